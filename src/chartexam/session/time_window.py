"""Time-window gating for chart-exam submissions and analytics events."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Mapping, Optional

from chartexam.session.store import SessionStore
from chartexam.session.types import (
    ChartMetadata,
    DeviceInfo,
    ExamType,
    FocusEvent,
    FocusEventType,
    Session,
    SessionInfo,
    SessionStatus,
    Submission,
    TimeWindowResult,
    ValidationCode,
    session_key,
)

LOGGER = logging.getLogger(__name__)


class TimeWindowValidator:
    """Issues time windows and checks every interaction against them."""

    def __init__(self, store: SessionStore, *, auto_create_missing: Optional[bool] = None) -> None:
        self._store = store
        if auto_create_missing is None:
            auto_create_missing = store.config.session.auto_create_missing
        self._auto_create_missing = auto_create_missing

    @property
    def store(self) -> SessionStore:
        return self._store

    @property
    def auto_create_missing(self) -> bool:
        return self._auto_create_missing

    def start_session(
        self,
        user_id: str,
        exam_type: ExamType | str,
        chart_count: int,
        part: int = 1,
    ) -> SessionInfo:
        exam = ExamType.parse(exam_type)
        key = session_key(user_id, exam, chart_count, part)
        session = self._store.create(key, user_id, exam, chart_count, part)
        return SessionInfo(
            session_key=key,
            start_time_ms=session.start_time_ms,
            expires_at_ms=session.expires_at_ms,
            time_limit_s=session.time_limit_s,
            time_remaining_s=session.time_limit_s,
        )

    def validate(
        self,
        user_id: str,
        exam_type: ExamType | str,
        chart_count: int,
        part: int = 1,
    ) -> TimeWindowResult:
        exam = ExamType.parse(exam_type)
        key = session_key(user_id, exam, chart_count, part)

        def _check(session: Optional[Session]) -> TimeWindowResult:
            now = self._store.now_ms()
            LOGGER.debug("Validating session: %s", key)
            if session is None:
                return self._handle_missing(key, user_id, exam, chart_count, part)
            if session.is_expired(now):
                return TimeWindowResult(
                    valid=False,
                    time_spent_s=session.time_limit_s,
                    attempts=session.attempts,
                    code=ValidationCode.TIME_LIMIT_EXCEEDED,
                    error="Time limit exceeded for this chart.",
                    session_key=key,
                )
            session.attempts += 1
            return TimeWindowResult(
                valid=True,
                time_spent_s=session.time_spent_s(now),
                attempts=session.attempts,
                time_remaining_s=session.time_remaining_s(now),
                session_key=key,
            )

        return self._store.apply(key, _check)

    def get_session_status(
        self,
        user_id: str,
        exam_type: ExamType | str,
        chart_count: int,
        part: int = 1,
    ) -> Optional[SessionStatus]:
        key = session_key(user_id, ExamType.parse(exam_type), chart_count, part)

        def _status(session: Optional[Session]) -> Optional[SessionStatus]:
            if session is None:
                return None
            now = self._store.now_ms()
            return SessionStatus(
                session_key=key,
                time_remaining_s=session.time_remaining_s(now),
                time_spent_s=session.time_spent_s(now),
                attempts=session.attempts,
                is_expired=session.is_expired(now),
                start_time_ms=session.start_time_ms,
                expires_at_ms=session.expires_at_ms,
            )

        return self._store.apply(key, _status)

    def record_submission(self, key: str, payload: Mapping[str, Any]) -> bool:
        """Append a submission to an existing session; returns False if absent."""

        submission = Submission.from_payload(payload, timestamp_ms=self._store.now_ms())

        def _append(session: Optional[Session]) -> bool:
            if session is None:
                return False
            session.submissions.append(submission)
            return True

        recorded = self._store.apply(key, _append)
        if recorded:
            LOGGER.debug("Recorded submission for session %s (score=%s/%s)", key, submission.score, submission.total_points)
        return recorded

    def record_focus_event(self, key: str, event_type: FocusEventType | str) -> bool:
        """Append a focus event; a gained_focus resolves the last open lost_focus."""

        kind = FocusEventType.parse(event_type)

        def _append(session: Optional[Session]) -> bool:
            if session is None:
                return False
            now = self._store.now_ms()
            duration: Optional[int] = None
            if kind is FocusEventType.GAINED_FOCUS:
                duration = _resolve_open_focus_loss(session, now)
            session.focus_events.append(FocusEvent(event_type=kind, timestamp_ms=now, duration_ms=duration))
            return True

        recorded = self._store.apply(key, _append)
        if recorded:
            LOGGER.debug("Recorded focus event: %s for session %s", kind.value, key)
        return recorded

    def set_chart_metadata(self, key: str, metadata: ChartMetadata | Mapping[str, Any]) -> bool:
        if not isinstance(metadata, ChartMetadata):
            metadata = ChartMetadata.from_payload(metadata)
        value = metadata

        def _set(session: Optional[Session]) -> bool:
            if session is None:
                return False
            session.chart_metadata = value
            return True

        return self._store.apply(key, _set)

    def set_device_info(self, key: str, device_info: DeviceInfo | Mapping[str, Any]) -> bool:
        if not isinstance(device_info, DeviceInfo):
            device_info = DeviceInfo.from_payload(device_info)
        value = device_info

        def _set(session: Optional[Session]) -> bool:
            if session is None:
                return False
            session.device_info = value
            return True

        return self._store.apply(key, _set)

    def _handle_missing(
        self,
        key: str,
        user_id: str,
        exam: ExamType,
        chart_count: int,
        part: int,
    ) -> TimeWindowResult:
        if not self._auto_create_missing:
            return TimeWindowResult(
                valid=False,
                time_spent_s=0,
                attempts=0,
                code=ValidationCode.SESSION_NOT_FOUND,
                error="Chart session not found. Please reload the chart.",
                session_key=key,
            )
        # Lost session state (restart, eviction) is granted a fresh window.
        LOGGER.info("No session found for %s, creating new session", key)
        session = self._store.create(key, user_id, exam, chart_count, part)
        session.attempts = 1
        return TimeWindowResult(
            valid=True,
            time_spent_s=0,
            attempts=1,
            time_remaining_s=session.time_limit_s,
            session_key=key,
            auto_created=True,
        )


def _resolve_open_focus_loss(session: Session, now_ms: int) -> Optional[int]:
    for index in range(len(session.focus_events) - 1, -1, -1):
        event = session.focus_events[index]
        if event.event_type is FocusEventType.GAINED_FOCUS:
            return None
        if event.event_type is FocusEventType.LOST_FOCUS and event.duration_ms is None:
            duration = max(0, now_ms - event.timestamp_ms)
            session.focus_events[index] = replace(event, duration_ms=duration)
            return duration
    return None


__all__ = ["TimeWindowValidator"]

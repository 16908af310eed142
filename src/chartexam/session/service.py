"""Wiring of store, validator and finalizer behind the three caller contracts."""

from __future__ import annotations

from typing import Any, Callable, Mapping, Optional

from chartexam.analytics.sinks import build_sink
from chartexam.config.loader import Config, default_config
from chartexam.session.finalizer import SessionFinalizer, SummarySink
from chartexam.session.store import SessionStore
from chartexam.session.time_window import TimeWindowValidator
from chartexam.session.types import (
    ChartMetadata,
    DeviceInfo,
    ExamType,
    FocusEventType,
    SessionInfo,
    SessionStatus,
    SessionSummary,
    TimeWindowResult,
)


class ExamSessionService:
    """One isolated session table with its sweeper, validator and finalizer."""

    def __init__(
        self,
        config: Optional[Config] = None,
        *,
        sink: Optional[SummarySink] = None,
        now_fn: Optional[Callable[[], int]] = None,
        auto_create_missing: Optional[bool] = None,
    ) -> None:
        self._config = config or default_config()
        self.store = SessionStore(self._config, now_fn=now_fn)
        self.validator = TimeWindowValidator(self.store, auto_create_missing=auto_create_missing)
        if sink is None:
            sink = build_sink(self._config.persistence)
        self.finalizer = SessionFinalizer(self.store, sink)

    @property
    def config(self) -> Config:
        return self._config

    def start(self) -> None:
        self.store.start()

    def stop(self) -> None:
        self.store.stop()

    def __enter__(self) -> "ExamSessionService":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def start_session(self, user_id: str, exam_type: ExamType | str, chart_count: int, part: int = 1) -> SessionInfo:
        return self.validator.start_session(user_id, exam_type, chart_count, part)

    def validate(self, user_id: str, exam_type: ExamType | str, chart_count: int, part: int = 1) -> TimeWindowResult:
        return self.validator.validate(user_id, exam_type, chart_count, part)

    def get_session_status(
        self, user_id: str, exam_type: ExamType | str, chart_count: int, part: int = 1
    ) -> Optional[SessionStatus]:
        return self.validator.get_session_status(user_id, exam_type, chart_count, part)

    def end_session(
        self, user_id: str, exam_type: ExamType | str, chart_count: int, part: int = 1
    ) -> Optional[SessionSummary]:
        return self.finalizer.end_session(user_id, exam_type, chart_count, part)

    def record_submission(self, key: str, payload: Mapping[str, Any]) -> bool:
        return self.validator.record_submission(key, payload)

    def record_focus_event(self, key: str, event_type: FocusEventType | str) -> bool:
        return self.validator.record_focus_event(key, event_type)

    def set_chart_metadata(self, key: str, metadata: ChartMetadata | Mapping[str, Any]) -> bool:
        return self.validator.set_chart_metadata(key, metadata)

    def set_device_info(self, key: str, device_info: DeviceInfo | Mapping[str, Any]) -> bool:
        return self.validator.set_device_info(key, device_info)


__all__ = ["ExamSessionService"]

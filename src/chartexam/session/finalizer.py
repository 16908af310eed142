"""Session end handling: summarize an attempt and hand it to persistence."""

from __future__ import annotations

import logging
from typing import Optional, Protocol, Sequence, Tuple

from chartexam.session.store import SessionStore
from chartexam.session.types import (
    ExamType,
    FocusEvent,
    FocusEventType,
    Session,
    SessionSummary,
    session_key,
)

LOGGER = logging.getLogger(__name__)


class SummarySink(Protocol):
    def persist(self, summary: SessionSummary) -> None:
        ...


class SessionFinalizer:
    """Converts ended sessions into immutable summaries."""

    def __init__(self, store: SessionStore, sink: Optional[SummarySink] = None) -> None:
        self._store = store
        self._sink = sink

    @property
    def sink(self) -> Optional[SummarySink]:
        return self._sink

    def end_session(
        self,
        user_id: str,
        exam_type: ExamType | str,
        chart_count: int,
        part: int = 1,
    ) -> Optional[SessionSummary]:
        """End the session for the tuple and return its summary.

        Returns ``None`` when no session exists, so repeated calls are safe.
        The session is claimed (removed) before persistence runs; a failing
        sink is logged and does not fail the call.
        """

        key = session_key(user_id, ExamType.parse(exam_type), chart_count, part)
        session = self._store.pop(key)
        if session is None:
            LOGGER.debug("No active session for %s; nothing to finalize", key)
            return None

        summary = summarize_session(session, self._store.now_ms())
        self._persist(summary)
        LOGGER.info(
            "Finalized session %s (completed=%s, attempts=%d, final_score=%s)",
            key,
            summary.completed,
            summary.attempts,
            summary.final_score,
        )
        return summary

    def _persist(self, summary: SessionSummary) -> None:
        if self._sink is None:
            return
        try:
            self._sink.persist(summary)
        except Exception:  # pylint: disable=broad-exception-caught
            LOGGER.exception("Error saving chart exam analytics for session %s", summary.session_id)


def summarize_session(session: Session, now_ms: int) -> SessionSummary:
    total_time_spent_s = session.time_spent_s(now_ms)
    total_focus_lost_ms, focus_loss_count = fold_focus_events(session.focus_events)
    if session.submissions:
        last = session.submissions[-1]
        final_score, final_accuracy = last.score, last.accuracy
    else:
        final_score, final_accuracy = 0, 0.0
    return SessionSummary(
        user_id=session.user_id,
        session_id=session.key,
        exam_type=session.exam_type,
        chart_count=session.chart_count,
        part=session.part,
        session_start_ms=session.start_time_ms,
        session_end_ms=now_ms,
        total_time_spent_s=total_time_spent_s,
        time_limit_s=session.time_limit_s,
        time_pressure_ratio=total_time_spent_s / session.time_limit_s,
        attempts=session.attempts,
        submissions=tuple(session.submissions),
        focus_events=tuple(session.focus_events),
        total_focus_lost_ms=total_focus_lost_ms,
        focus_loss_count=focus_loss_count,
        final_score=final_score,
        final_accuracy=final_accuracy,
        completed=now_ms <= session.expires_at_ms,
        chart_metadata=session.chart_metadata,
        device_info=session.device_info,
    )


def fold_focus_events(events: Sequence[FocusEvent]) -> Tuple[int, int]:
    """Return ``(total_focus_lost_ms, focus_loss_count)``.

    Only ``lost_focus`` entries count; an unresolved loss adds nothing to the total.
    """

    total = 0
    count = 0
    for event in events:
        if event.event_type is not FocusEventType.LOST_FOCUS:
            continue
        count += 1
        if event.duration_ms:
            total += event.duration_ms
    return total, count


__all__ = [
    "SessionFinalizer",
    "SummarySink",
    "fold_focus_events",
    "summarize_session",
]

"""Session lifecycle components for timed chart exams."""

from chartexam.session.finalizer import SessionFinalizer, summarize_session
from chartexam.session.metadata import derive_chart_metadata
from chartexam.session.service import ExamSessionService
from chartexam.session.store import SessionStore
from chartexam.session.time_window import TimeWindowValidator
from chartexam.session.types import (
    ChartMetadata,
    DeviceInfo,
    ExamType,
    FocusEventType,
    InvalidExamTypeError,
    MalformedPayloadError,
    SessionSummary,
    TimeWindowResult,
    ValidationCode,
    session_key,
)

__all__ = [
    "ChartMetadata",
    "DeviceInfo",
    "ExamSessionService",
    "ExamType",
    "FocusEventType",
    "InvalidExamTypeError",
    "MalformedPayloadError",
    "SessionFinalizer",
    "SessionStore",
    "SessionSummary",
    "TimeWindowResult",
    "TimeWindowValidator",
    "ValidationCode",
    "derive_chart_metadata",
    "session_key",
    "summarize_session",
]

"""Shared dataclasses and enums for chart-exam sessions."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple


class InvalidExamTypeError(ValueError):
    """Raised when an exam type outside swing/fibonacci/fvg is requested."""


class MalformedPayloadError(ValueError):
    """Raised when an analytics payload does not fit its record shape."""


class ExamType(str, Enum):
    SWING = "swing"
    FIBONACCI = "fibonacci"
    FVG = "fvg"

    @classmethod
    def parse(cls, value: "ExamType | str") -> "ExamType":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError as exc:
            supported = ", ".join(item.value for item in cls)
            raise InvalidExamTypeError(f"examType must be one of: {supported} (got {value!r})") from exc


class FocusEventType(str, Enum):
    LOST_FOCUS = "lost_focus"
    GAINED_FOCUS = "gained_focus"
    WARNING_SHOWN = "warning_shown"
    TIMEOUT_RESET = "timeout_reset"

    @classmethod
    def parse(cls, value: "FocusEventType | str") -> "FocusEventType":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError as exc:
            raise MalformedPayloadError(f"Unknown focus event type: {value!r}") from exc


class ValidationCode(str, Enum):
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    TIME_LIMIT_EXCEEDED = "TIME_LIMIT_EXCEEDED"


def session_key(user_id: str, exam_type: ExamType | str, chart_count: int, part: int = 1) -> str:
    exam_value = exam_type.value if isinstance(exam_type, ExamType) else exam_type
    return f"{user_id}_{exam_value}_{chart_count}_{part}"


@dataclass(frozen=True)
class FocusEvent:
    event_type: FocusEventType
    timestamp_ms: int
    duration_ms: Optional[int] = None


@dataclass(frozen=True)
class Submission:
    timestamp_ms: int
    score: float
    total_points: float
    accuracy: float
    drawings_count: int
    time_spent_on_attempt_s: int
    mistakes: Tuple[str, ...] = ()

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], *, timestamp_ms: int) -> "Submission":
        """Build a submission record from a client payload.

        Missing numeric fields default to zero; present fields must be numbers.
        ``accuracy`` is always derived from score and total points.
        """
        score = _number(payload, "score")
        total_points = _number(payload, "totalPoints", "total_points")
        drawings = _number(payload, "drawings", "drawingsCount", "drawings_count")
        time_spent = _number(payload, "timeSpent", "time_spent")
        mistakes = payload.get("mistakes") or ()
        if isinstance(mistakes, (str, bytes)) or not isinstance(mistakes, (list, tuple)):
            raise MalformedPayloadError("'mistakes' must be a list when provided")
        accuracy = score / total_points if total_points > 0 else 0.0
        return cls(
            timestamp_ms=timestamp_ms,
            score=score,
            total_points=total_points,
            accuracy=accuracy,
            drawings_count=int(drawings),
            time_spent_on_attempt_s=int(time_spent),
            mistakes=tuple(str(item) for item in mistakes),
        )


@dataclass(frozen=True)
class ChartMetadata:
    symbol: Optional[str]
    timeframe: Optional[str]
    price_range: Optional[float] = None
    volatility: Optional[float] = None
    trend_direction: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ChartMetadata":
        if not isinstance(payload, Mapping):
            raise MalformedPayloadError("Chart metadata must be a mapping")
        return cls(
            symbol=_optional_str(payload, "symbol"),
            timeframe=_optional_str(payload, "timeframe"),
            price_range=_optional_number(payload, "priceRange", "price_range"),
            volatility=_optional_number(payload, "volatility"),
            trend_direction=_optional_str(payload, "trendDirection", "trend_direction"),
        )


@dataclass(frozen=True)
class DeviceInfo:
    user_agent: Optional[str]
    screen_resolution: Optional[str]
    is_mobile: bool = False

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "DeviceInfo":
        if not isinstance(payload, Mapping):
            raise MalformedPayloadError("Device info must be a mapping")
        return cls(
            user_agent=_optional_str(payload, "userAgent", "user_agent"),
            screen_resolution=_optional_str(payload, "screenResolution", "screen_resolution"),
            is_mobile=bool(payload.get("isMobile", payload.get("is_mobile", False))),
        )


@dataclass
class Session:
    key: str
    user_id: str
    exam_type: ExamType
    chart_count: int
    part: int
    start_time_ms: int
    expires_at_ms: int
    time_limit_s: int
    attempts: int = 0
    submissions: List[Submission] = field(default_factory=list)
    focus_events: List[FocusEvent] = field(default_factory=list)
    chart_metadata: Optional[ChartMetadata] = None
    device_info: Optional[DeviceInfo] = None

    def is_expired(self, now_ms: int) -> bool:
        return now_ms > self.expires_at_ms

    def time_remaining_s(self, now_ms: int) -> int:
        return max(0, (self.expires_at_ms - now_ms) // 1000)

    def time_spent_s(self, now_ms: int) -> int:
        return max(0, (now_ms - self.start_time_ms) // 1000)


@dataclass(frozen=True)
class SessionInfo:
    session_key: str
    start_time_ms: int
    expires_at_ms: int
    time_limit_s: int
    time_remaining_s: int


@dataclass(frozen=True)
class SessionStatus:
    session_key: str
    time_remaining_s: int
    time_spent_s: int
    attempts: int
    is_expired: bool
    start_time_ms: int
    expires_at_ms: int


@dataclass(frozen=True)
class TimeWindowResult:
    valid: bool
    time_spent_s: int
    attempts: int
    time_remaining_s: Optional[int] = None
    code: Optional[ValidationCode] = None
    error: Optional[str] = None
    session_key: Optional[str] = None
    auto_created: bool = False

    def to_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "valid": self.valid,
            "time_spent": self.time_spent_s,
            "attempts": self.attempts,
        }
        if self.time_remaining_s is not None:
            payload["time_remaining"] = self.time_remaining_s
        if self.code is not None:
            payload["code"] = self.code.value
            payload["error"] = self.error
        return payload


@dataclass(frozen=True)
class SessionSummary:
    user_id: str
    session_id: str
    exam_type: ExamType
    chart_count: int
    part: int
    session_start_ms: int
    session_end_ms: int
    total_time_spent_s: int
    time_limit_s: int
    time_pressure_ratio: float
    attempts: int
    submissions: Tuple[Submission, ...]
    focus_events: Tuple[FocusEvent, ...]
    total_focus_lost_ms: int
    focus_loss_count: int
    final_score: float
    final_accuracy: float
    completed: bool
    chart_metadata: Optional[ChartMetadata] = None
    device_info: Optional[DeviceInfo] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "user_id": self.user_id,
            "session_id": self.session_id,
            "exam_type": self.exam_type.value,
            "chart_count": self.chart_count,
            "part": self.part,
            "session_start_time": ms_to_iso(self.session_start_ms),
            "session_end_time": ms_to_iso(self.session_end_ms),
            "total_time_spent": self.total_time_spent_s,
            "time_limit": self.time_limit_s,
            "time_pressure_ratio": self.time_pressure_ratio,
            "attempts": self.attempts,
            "submissions": [_serialize_submission(item) for item in self.submissions],
            "focus_events": [_serialize_focus_event(item) for item in self.focus_events],
            "total_focus_lost_time": self.total_focus_lost_ms,
            "focus_loss_count": self.focus_loss_count,
            "final_score": self.final_score,
            "final_accuracy": self.final_accuracy,
            "completed": self.completed,
            "chart_metadata": _serialize_chart_metadata(self.chart_metadata),
            "device_info": _serialize_device_info(self.device_info),
        }


def ms_to_iso(value: Optional[int]) -> Optional[str]:
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc).isoformat().replace("+00:00", "Z")


def _serialize_submission(submission: Submission) -> Dict[str, object]:
    return {
        "timestamp": ms_to_iso(submission.timestamp_ms),
        "score": submission.score,
        "total_points": submission.total_points,
        "accuracy": submission.accuracy,
        "drawings_count": submission.drawings_count,
        "time_spent_on_attempt": submission.time_spent_on_attempt_s,
        "mistakes": list(submission.mistakes),
    }


def _serialize_focus_event(event: FocusEvent) -> Dict[str, object]:
    payload: Dict[str, object] = {
        "type": event.event_type.value,
        "timestamp": ms_to_iso(event.timestamp_ms),
    }
    if event.duration_ms is not None:
        payload["duration"] = event.duration_ms
    return payload


def _serialize_chart_metadata(metadata: Optional[ChartMetadata]) -> Dict[str, object]:
    if metadata is None:
        return {}
    return {
        "symbol": metadata.symbol,
        "timeframe": metadata.timeframe,
        "price_range": metadata.price_range,
        "volatility": metadata.volatility,
        "trend_direction": metadata.trend_direction,
    }


def _serialize_device_info(info: Optional[DeviceInfo]) -> Dict[str, object]:
    if info is None:
        return {}
    return {
        "user_agent": info.user_agent,
        "screen_resolution": info.screen_resolution,
        "is_mobile": info.is_mobile,
    }


def _number(payload: Mapping[str, Any], *keys: str) -> float:
    for key in keys:
        if key not in payload or payload[key] is None:
            continue
        value = payload[key]
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            raise MalformedPayloadError(f"'{key}' must be a finite number")
        return value
    return 0


def _optional_number(payload: Mapping[str, Any], *keys: str) -> Optional[float]:
    for key in keys:
        if key in payload and payload[key] is not None:
            return float(_number(payload, key))
    return None


def _optional_str(payload: Mapping[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = payload.get(key)
        if value is None:
            continue
        if not isinstance(value, str):
            raise MalformedPayloadError(f"'{key}' must be a string")
        return value
    return None


__all__ = [
    "ChartMetadata",
    "DeviceInfo",
    "ExamType",
    "FocusEvent",
    "FocusEventType",
    "InvalidExamTypeError",
    "MalformedPayloadError",
    "Session",
    "SessionInfo",
    "SessionStatus",
    "SessionSummary",
    "Submission",
    "TimeWindowResult",
    "ValidationCode",
    "ms_to_iso",
    "session_key",
]

"""Integrity checks for chart-exam results before they are persisted."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

LOGGER = logging.getLogger(__name__)

CHART_EXAM_TEST_TYPE = "chart-exam"


class SubType(str, Enum):
    SWING_ANALYSIS = "swing-analysis"
    FIBONACCI_RETRACEMENT = "fibonacci-retracement"
    FAIR_VALUE_GAPS = "fair-value-gaps"


VALID_SUB_TYPES = tuple(item.value for item in SubType)

SWING_TOTAL_POINTS_RANGE = (2, 25)
FIBONACCI_TOTAL_POINTS = 2
FIBONACCI_SCORE_STEP = 0.5
FVG_TOTAL_POINTS_MAX = 15


@dataclass(frozen=True)
class ScoringValidation:
    """Outcome of validating one result.

    ``hard_errors`` must block persistence; ``warnings`` are advisory.
    """

    hard_errors: Tuple[str, ...]
    warnings: Tuple[str, ...]
    sanitized: Dict[str, Any] = field(default_factory=dict)

    @property
    def valid(self) -> bool:
        return not self.hard_errors

    @property
    def errors(self) -> List[str]:
        return [*self.hard_errors, *self.warnings]

    def to_dict(self) -> Dict[str, object]:
        return {
            "valid": self.valid,
            "errors": self.errors,
            "hard_errors": list(self.hard_errors),
            "warnings": list(self.warnings),
            "sanitized": dict(self.sanitized),
        }


def validate_chart_exam_result(
    result: Mapping[str, Any],
    *,
    now: Optional[datetime] = None,
) -> ScoringValidation:
    """Validate a result mapping and return a sanitized copy.

    Accepts camelCase keys (``userId``, ``testType``, ``subType``,
    ``totalPoints``) as sent by clients. The input is never mutated.
    """

    hard: List[str] = []
    warnings: List[str] = []

    if not result.get("userId"):
        hard.append("Missing userId")

    if result.get("testType") != CHART_EXAM_TEST_TYPE:
        hard.append(f'Invalid testType - must be "{CHART_EXAM_TEST_TYPE}"')

    sub_type = result.get("subType")
    if sub_type not in VALID_SUB_TYPES:
        hard.append(f"Invalid subType - must be {', '.join(VALID_SUB_TYPES[:-1])}, or {VALID_SUB_TYPES[-1]}")

    score = result.get("score")
    total_points = result.get("totalPoints")
    score_ok = _is_finite_number(score)
    total_ok = _is_finite_number(total_points)

    if not score_ok or score < 0:
        hard.append("Invalid score - must be a non-negative number")
    if not total_ok or total_points <= 0:
        hard.append("Invalid totalPoints - must be a positive number")
    if score_ok and total_ok and score > total_points:
        hard.append(f"Score ({score}) cannot exceed totalPoints ({total_points})")

    if sub_type == SubType.SWING_ANALYSIS.value and total_ok:
        low, high = SWING_TOTAL_POINTS_RANGE
        if total_points > high:
            warnings.append(f"Swing analysis totalPoints ({total_points}) seems unusually high")
        if total_points < low:
            warnings.append(f"Swing analysis totalPoints ({total_points}) seems too low")

    elif sub_type == SubType.FIBONACCI_RETRACEMENT.value:
        if not total_ok or total_points != FIBONACCI_TOTAL_POINTS:
            hard.append(f"Fibonacci retracement totalPoints should be {FIBONACCI_TOTAL_POINTS}, got {total_points}")
        if score_ok and not float(score / FIBONACCI_SCORE_STEP).is_integer():
            hard.append(f"Fibonacci score should be in {FIBONACCI_SCORE_STEP} increments, got {score}")

    elif sub_type == SubType.FAIR_VALUE_GAPS.value and total_ok:
        if total_points > FVG_TOTAL_POINTS_MAX:
            warnings.append(f"FVG totalPoints ({total_points}) seems unusually high")
        if total_points < 0:
            hard.append(f"FVG totalPoints ({total_points}) cannot be negative")

    sanitized = dict(result)
    if score_ok and total_ok:
        sanitized["score"] = max(0, min(score, total_points))
    if not sanitized.get("completedAt"):
        sanitized["completedAt"] = now or datetime.now(tz=timezone.utc)

    return ScoringValidation(hard_errors=tuple(hard), warnings=tuple(warnings), sanitized=sanitized)


def log_validation_issues(sub_type: Optional[str], result: Mapping[str, Any], validation: ScoringValidation) -> None:
    """Report non-empty issue lists for monitoring; never blocks acceptance."""

    if not validation.errors:
        return
    score = result.get("score")
    total_points = result.get("totalPoints")
    percentage = "n/a"
    if _is_finite_number(score) and _is_finite_number(total_points) and total_points:
        percentage = f"{score / total_points * 100:.1f}%"
    LOGGER.warning(
        "Chart exam validation issues for %s: hard_errors=%s warnings=%s score=%s totalPoints=%s percentage=%s",
        sub_type,
        list(validation.hard_errors),
        list(validation.warnings),
        score,
        total_points,
        percentage,
    )


def is_percentage_unreasonable(score: float, total_points: float) -> bool:
    if total_points <= 0:
        return True
    percentage = score / total_points * 100
    return percentage > 100 or percentage < 0


def _is_finite_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


__all__ = [
    "CHART_EXAM_TEST_TYPE",
    "ScoringValidation",
    "SubType",
    "VALID_SUB_TYPES",
    "is_percentage_unreasonable",
    "log_validation_issues",
    "validate_chart_exam_result",
]

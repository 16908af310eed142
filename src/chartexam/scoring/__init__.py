"""Scoring integrity validation for chart-exam results."""

from chartexam.scoring.validation import (
    ScoringValidation,
    SubType,
    is_percentage_unreasonable,
    log_validation_issues,
    validate_chart_exam_result,
)

__all__ = [
    "ScoringValidation",
    "SubType",
    "is_percentage_unreasonable",
    "log_validation_issues",
    "validate_chart_exam_result",
]

"""CLI that runs scoring integrity checks over exported chart-exam results."""

from __future__ import annotations

import argparse
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from chartexam.cli._helpers import add_common_args, configure_logging, describe_time_limits, load_cli_config
from chartexam.config.loader import Config
from chartexam.scoring.validation import log_validation_issues, validate_chart_exam_result

LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_INVALID = 1
EXIT_UNREADABLE = 2

SUB_TYPE_EXAM_TYPES = {
    "swing-analysis": "swing",
    "fibonacci-retracement": "fibonacci",
    "fair-value-gaps": "fvg",
}


@dataclass
class ValidationTally:
    records: int = 0
    rejected: int = 0
    with_warnings: int = 0
    failures: List[str] = field(default_factory=list)

    def passed(self, *, strict: bool) -> bool:
        if self.rejected:
            return False
        return not (strict and self.with_warnings)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chartexam-validate",
        description="Check chart-exam result records against the per-sub-type scoring contracts.",
    )
    add_common_args(parser)
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Treat advisory warnings as failures",
    )
    parser.add_argument(
        "files",
        nargs="+",
        help="JSON (object or list) or JSONL files containing result records",
    )
    return parser


def load_results(path: Path) -> List[Dict[str, Any]]:
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".jsonl":
        records: List[Dict[str, Any]] = []
        for number, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                records.append(json.loads(line))
            except json.JSONDecodeError as exc:
                LOGGER.warning("Skipping invalid line %d in %s: %s", number, path, exc)
        return [record for record in records if _is_record(record, path)]
    data = json.loads(text)
    items = data if isinstance(data, list) else [data]
    return [record for record in items if _is_record(record, path)]


def validate_records(
    records: Sequence[Dict[str, Any]],
    tally: ValidationTally,
    *,
    source: str,
    config: Optional[Config] = None,
) -> None:
    for index, record in enumerate(records):
        tally.records += 1
        validation = validate_chart_exam_result(record)
        log_validation_issues(record.get("subType"), record, validation)
        overrun = _time_limit_overrun(record, config) if config is not None else None
        if overrun is not None:
            LOGGER.warning("%s[%d]: %s", source, index, overrun)
        if not validation.valid:
            tally.rejected += 1
            tally.failures.append(f"{source}[{index}]: {'; '.join(validation.hard_errors)}")
        elif validation.warnings or overrun is not None:
            tally.with_warnings += 1


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(args.verbose)
    config = load_cli_config(args.config)
    LOGGER.info("Config loaded (version=%s, limits: %s)", config.config_version, describe_time_limits(config))

    tally = ValidationTally()
    for name in args.files:
        path = Path(name)
        try:
            records = load_results(path)
        except (OSError, json.JSONDecodeError) as exc:
            LOGGER.error("Could not read results from %s: %s", path, exc)
            return EXIT_UNREADABLE
        validate_records(records, tally, source=str(path), config=config)

    _print_tally(tally)
    return EXIT_OK if tally.passed(strict=args.strict) else EXIT_INVALID


def _time_limit_overrun(record: Dict[str, Any], config: Config) -> Optional[str]:
    exam_type = SUB_TYPE_EXAM_TYPES.get(record.get("subType"))
    time_spent = record.get("timeSpent")
    if exam_type is None or isinstance(time_spent, bool) or not isinstance(time_spent, (int, float)):
        return None
    limit = config.time_limit_for(exam_type)
    if time_spent <= limit:
        return None
    return f"timeSpent {time_spent}s exceeds the {limit}s {exam_type} time limit"


def _is_record(item: object, path: Path) -> bool:
    if isinstance(item, dict):
        return True
    LOGGER.warning("Skipping non-object entry in %s", path)
    return False


def _print_tally(tally: ValidationTally) -> None:
    LOGGER.info("Records checked: %d", tally.records)
    LOGGER.info("Rejected: %d", tally.rejected)
    LOGGER.info("Accepted with warnings: %d", tally.with_warnings)
    for failure in tally.failures:
        LOGGER.info("  %s", failure)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())

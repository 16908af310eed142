"""Config loader with schema validation for timed chart-exam sessions."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

VALID_EXAM_TYPES = ("swing", "fibonacci", "fvg")
DEFAULT_TIME_LIMIT_S = 180
DEFAULT_TIME_LIMITS_S = {"swing": 180, "fibonacci": 120, "fvg": 150}


class ConfigError(ValueError):
    """Raised when a configuration file fails validation."""


@dataclass(frozen=True)
class SessionConfig:
    grace_period_s: int = 300
    sweep_interval_s: int = 1800
    auto_create_missing: bool = True


@dataclass(frozen=True)
class JsonlSinkConfig:
    enabled: bool = True
    log_dir: Path = Path("logs/chart-exams")


@dataclass(frozen=True)
class HttpSinkConfig:
    enabled: bool = False
    endpoint: Optional[str] = None
    timeout_ms: int = 2000


@dataclass(frozen=True)
class PersistenceConfig:
    jsonl: JsonlSinkConfig = field(default_factory=JsonlSinkConfig)
    http: HttpSinkConfig = field(default_factory=HttpSinkConfig)


@dataclass(frozen=True)
class Config:
    source: Optional[Path]
    config_version: str
    time_limits_s: Dict[str, int]
    session: SessionConfig
    persistence: PersistenceConfig

    def time_limit_for(self, exam_type: str) -> int:
        return self.time_limits_s.get(exam_type, DEFAULT_TIME_LIMIT_S)


def default_config() -> Config:
    """Reference configuration used when no file is supplied."""
    return Config(
        source=None,
        config_version="default",
        time_limits_s=dict(DEFAULT_TIME_LIMITS_S),
        session=SessionConfig(),
        persistence=PersistenceConfig(),
    )


def load_config(path: str | Path) -> Config:
    """Load and validate a YAML/JSON config file."""
    source = Path(path)
    if not source.exists():
        raise ConfigError(f"Config file not found: {source}")

    data = _deserialize(source)
    if not isinstance(data, dict):
        raise ConfigError("Config root must be a mapping")
    return _parse_config(data, source)


def _deserialize(source: Path) -> Any:
    text = source.read_text(encoding="utf-8")
    suffix = source.suffix.lower()
    try:
        if suffix == ".json":
            return json.loads(text)
        return yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigError(f"Config file {source} could not be parsed: {exc}") from exc


def _parse_config(data: Dict[str, Any], source: Path) -> Config:
    config_version = _require_str(data, "config_version")

    limits_section = data.get("time_limits_s", DEFAULT_TIME_LIMITS_S)
    if not isinstance(limits_section, dict):
        raise ConfigError("'time_limits_s' must be a mapping")
    time_limits: Dict[str, int] = {}
    for exam_type, value in limits_section.items():
        if exam_type not in VALID_EXAM_TYPES:
            raise ConfigError(
                f"time_limits_s.{exam_type} is not a supported exam type "
                f"(expected one of: {', '.join(VALID_EXAM_TYPES)})"
            )
        time_limits[exam_type] = _coerce_int(value, f"time_limits_s.{exam_type}", minimum=1)

    session_section = data.get("session", {})
    if not isinstance(session_section, dict):
        raise ConfigError("session block must be a mapping if provided")
    session = SessionConfig(
        grace_period_s=_coerce_int(session_section.get("grace_period_s", 300), "session.grace_period_s", minimum=0),
        sweep_interval_s=_coerce_int(session_section.get("sweep_interval_s", 1800), "session.sweep_interval_s", minimum=1),
        auto_create_missing=bool(session_section.get("auto_create_missing", True)),
    )

    persistence_section = data.get("persistence", {})
    if not isinstance(persistence_section, dict):
        raise ConfigError("persistence block must be a mapping if provided")

    jsonl_section = persistence_section.get("jsonl", {})
    if not isinstance(jsonl_section, dict):
        raise ConfigError("persistence.jsonl block must be a mapping if provided")
    jsonl = JsonlSinkConfig(
        enabled=bool(jsonl_section.get("enabled", True)),
        log_dir=_optional_path(jsonl_section.get("log_dir")) or Path("logs/chart-exams"),
    )

    http_section = persistence_section.get("http", {})
    if not isinstance(http_section, dict):
        raise ConfigError("persistence.http block must be a mapping if provided")
    http = HttpSinkConfig(
        enabled=bool(http_section.get("enabled", False)),
        endpoint=http_section.get("endpoint"),
        timeout_ms=_coerce_int(http_section.get("timeout_ms", 2000), "persistence.http.timeout_ms", minimum=1),
    )
    if http.enabled and not (isinstance(http.endpoint, str) and http.endpoint.strip()):
        raise ConfigError("persistence.http.endpoint is required when persistence.http.enabled is true")

    return Config(
        source=source,
        config_version=config_version,
        time_limits_s=time_limits,
        session=session,
        persistence=PersistenceConfig(jsonl=jsonl, http=http),
    )


def _require_str(obj: Dict[str, Any], key: str) -> str:
    value = obj.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"'{key}' must be a non-empty string")
    return value


def _coerce_int(value: Any, field_name: str, minimum: Optional[int] = None) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"'{field_name}' must be an integer, not boolean")
    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"'{field_name}' must be an integer") from exc
    if minimum is not None and parsed < minimum:
        raise ConfigError(f"'{field_name}' must be >= {minimum}")
    return parsed


def _optional_path(value: Any) -> Optional[Path]:
    if not value:
        return None
    if not isinstance(value, str):
        raise ConfigError("Path fields must be strings when provided")
    return Path(value)


__all__ = [
    "Config",
    "ConfigError",
    "DEFAULT_TIME_LIMIT_S",
    "DEFAULT_TIME_LIMITS_S",
    "HttpSinkConfig",
    "JsonlSinkConfig",
    "PersistenceConfig",
    "SessionConfig",
    "VALID_EXAM_TYPES",
    "default_config",
    "load_config",
]

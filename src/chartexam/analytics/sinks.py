"""Persistence collaborators for finalized chart-exam session summaries."""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Protocol

import requests

from chartexam.config.loader import HttpSinkConfig, PersistenceConfig

if TYPE_CHECKING:
    from chartexam.session.types import SessionSummary

LOGGER = logging.getLogger(__name__)


class PersistenceError(RuntimeError):
    """Raised when a summary could not be handed to durable storage."""


class AnalyticsSink(Protocol):
    def persist(self, summary: SessionSummary) -> None:
        ...


class JsonlAnalyticsSink:
    """Appends summaries to daily JSONL files bucketed by session start date."""

    def __init__(self, log_dir: str | Path = "logs/chart-exams") -> None:
        self._log_dir = Path(log_dir)

    @property
    def log_dir(self) -> Path:
        return self._log_dir

    def persist(self, summary: SessionSummary) -> None:
        date_bucket = datetime.fromtimestamp(summary.session_start_ms / 1000.0, tz=timezone.utc).strftime("%Y-%m-%d")
        target = self._log_dir / f"{date_bucket}.jsonl"
        line = json.dumps(summary.to_dict(), separators=(",", ":"))
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with target.open("a", encoding="utf-8") as handle:
                handle.write(line)
                handle.write("\n")
        except OSError as exc:
            raise PersistenceError(f"Could not write {target}: {exc}") from exc
        LOGGER.info("Saved analytics for session: %s", summary.session_id)


class HttpAnalyticsSink:
    """POSTs summaries to an analytics endpoint.

    The first transport or HTTP error disables the sink; later summaries are
    rejected with :class:`PersistenceError` without another request.
    """

    def __init__(self, config: HttpSinkConfig, *, session: Optional[requests.Session] = None) -> None:
        if not config.endpoint:
            raise ValueError("HttpAnalyticsSink requires an endpoint")
        self._endpoint = config.endpoint
        self._timeout_s = max(config.timeout_ms, 1) / 1000.0
        self._session = session or requests.Session()
        self._disabled = False
        self._last_error: Optional[str] = None

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def disabled(self) -> bool:
        return self._disabled

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    def persist(self, summary: SessionSummary) -> None:
        if self._disabled:
            raise PersistenceError(f"HTTP analytics disabled after earlier failure ({self._last_error})")
        try:
            start = time.perf_counter()
            response = self._session.post(self._endpoint, json=summary.to_dict(), timeout=self._timeout_s)
            latency_ms = (time.perf_counter() - start) * 1000.0
            response.raise_for_status()
        except requests.RequestException as exc:
            reason = f"{exc.__class__.__name__}: {exc}"
            self._disable(summary.session_id, reason)
            raise PersistenceError(reason) from exc
        LOGGER.debug(
            "Analytics delivered session=%s status=%s latency=%.2fms",
            summary.session_id,
            response.status_code,
            latency_ms,
        )

    def _disable(self, session_id: str, reason: str) -> None:
        if self._disabled:
            return
        self._disabled = True
        self._last_error = reason
        LOGGER.warning(
            "Disabling HTTP analytics persistence to %s after session %s (%s)",
            self._endpoint,
            session_id,
            reason,
        )


class CompositeSink:
    """Fans a summary out to several sinks; one failing sink does not stop the rest."""

    def __init__(self, sinks: Iterable[AnalyticsSink]) -> None:
        self._sinks = list(sinks)

    @property
    def sinks(self) -> List[AnalyticsSink]:
        return list(self._sinks)

    def persist(self, summary: SessionSummary) -> None:
        failures: List[str] = []
        for sink in self._sinks:
            try:
                sink.persist(summary)
            except PersistenceError as exc:
                LOGGER.warning("%s failed for session %s: %s", type(sink).__name__, summary.session_id, exc)
                failures.append(f"{type(sink).__name__}: {exc}")
        if failures:
            raise PersistenceError("; ".join(failures))


def build_sink(config: PersistenceConfig) -> Optional[AnalyticsSink]:
    sinks: List[AnalyticsSink] = []
    if config.jsonl.enabled:
        sinks.append(JsonlAnalyticsSink(config.jsonl.log_dir))
    if config.http.enabled:
        sinks.append(HttpAnalyticsSink(config.http))
    if not sinks:
        return None
    if len(sinks) == 1:
        return sinks[0]
    return CompositeSink(sinks)


def load_summaries(log_dir: Path) -> List[Dict[str, object]]:
    if not log_dir.exists():
        LOGGER.warning("Log directory %s not found; no summaries loaded", log_dir)
        return []
    records: List[Dict[str, object]] = []
    for path in sorted(log_dir.glob("*.jsonl")):
        with path.open("r", encoding="utf-8") as handle:
            for line in handle:
                if not line.strip():
                    continue
                try:
                    records.append(json.loads(line))
                except json.JSONDecodeError as exc:
                    LOGGER.warning("Skipping invalid log line in %s: %s", path, exc)
    return records


__all__ = [
    "AnalyticsSink",
    "CompositeSink",
    "HttpAnalyticsSink",
    "JsonlAnalyticsSink",
    "PersistenceError",
    "build_sink",
    "load_summaries",
]

from __future__ import annotations

import json
import logging
import threading
from contextlib import contextmanager
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import List

import pytest

from chartexam.analytics.sinks import (
    CompositeSink,
    HttpAnalyticsSink,
    JsonlAnalyticsSink,
    PersistenceError,
    build_sink,
    load_summaries,
)
from chartexam.config.loader import HttpSinkConfig, JsonlSinkConfig, PersistenceConfig
from chartexam.session.types import ExamType, SessionSummary, Submission


class _AnalyticsHandler(BaseHTTPRequestHandler):
    status: int = 200
    events: list[dict[str, object]] = []

    def do_POST(self) -> None:  # noqa: N802
        length = int(self.headers.get("Content-Length", "0"))
        payload = json.loads(self.rfile.read(length) or b"{}")
        type(self).events.append(payload)
        self.send_response(self.status)
        self.end_headers()
        self.wfile.write(b"ok")

    def log_message(self, format: str, *args: object) -> None:  # noqa: A003
        return


@contextmanager
def _run_server(handler_cls: type[_AnalyticsHandler]):
    handler_cls.events = []
    server = ThreadingHTTPServer(("127.0.0.1", 0), handler_cls)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield server
    finally:
        server.shutdown()
        thread.join(timeout=1)


def _summary(session_id: str = "u1_swing_1_1", start_ms: int = 1_760_000_000_000) -> SessionSummary:
    submission = Submission(
        timestamp_ms=start_ms + 60_000,
        score=8,
        total_points=10,
        accuracy=0.8,
        drawings_count=6,
        time_spent_on_attempt_s=60,
    )
    return SessionSummary(
        user_id="u1",
        session_id=session_id,
        exam_type=ExamType.SWING,
        chart_count=1,
        part=1,
        session_start_ms=start_ms,
        session_end_ms=start_ms + 90_000,
        total_time_spent_s=90,
        time_limit_s=180,
        time_pressure_ratio=0.5,
        attempts=2,
        submissions=(submission,),
        focus_events=(),
        total_focus_lost_ms=0,
        focus_loss_count=0,
        final_score=8,
        final_accuracy=0.8,
        completed=True,
    )


class _BrokenSink:
    def persist(self, summary: SessionSummary) -> None:
        raise PersistenceError("disk full")


def test_jsonl_sink_buckets_by_start_date(tmp_path: Path) -> None:
    sink = JsonlAnalyticsSink(tmp_path / "chart-exams")

    sink.persist(_summary("a"))
    sink.persist(_summary("b"))

    # 1_760_000_000_000 ms is 2025-10-09 UTC.
    target = tmp_path / "chart-exams" / "2025-10-09.jsonl"
    assert target.exists()
    records = load_summaries(tmp_path / "chart-exams")
    assert [record["session_id"] for record in records] == ["a", "b"]
    assert records[0]["submissions"][0]["accuracy"] == 0.8
    assert records[0]["exam_type"] == "swing"


def test_load_summaries_skips_invalid_lines(tmp_path: Path) -> None:
    (tmp_path / "2025-10-09.jsonl").write_text('{"session_id": "ok"}\nnot-json\n\n', encoding="utf-8")

    assert load_summaries(tmp_path) == [{"session_id": "ok"}]
    assert load_summaries(tmp_path / "missing") == []


def test_jsonl_sink_wraps_os_errors(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")
    sink = JsonlAnalyticsSink(blocker)

    with pytest.raises(PersistenceError):
        sink.persist(_summary())


def test_http_sink_posts_summary() -> None:
    class Handler(_AnalyticsHandler):
        status = 201

    with _run_server(Handler) as server:
        endpoint = f"http://127.0.0.1:{server.server_address[1]}/analytics"
        sink = HttpAnalyticsSink(HttpSinkConfig(enabled=True, endpoint=endpoint, timeout_ms=1000))
        sink.persist(_summary())

    assert Handler.events
    assert Handler.events[-1]["session_id"] == "u1_swing_1_1"
    assert Handler.events[-1]["final_score"] == 8


def test_http_sink_raises_on_server_error_and_unreachable() -> None:
    class Handler(_AnalyticsHandler):
        status = 500

    with _run_server(Handler) as server:
        endpoint = f"http://127.0.0.1:{server.server_address[1]}/analytics"
        sink = HttpAnalyticsSink(HttpSinkConfig(enabled=True, endpoint=endpoint, timeout_ms=1000))
        with pytest.raises(PersistenceError):
            sink.persist(_summary())

    unreachable = HttpAnalyticsSink(HttpSinkConfig(enabled=True, endpoint="http://127.0.0.1:9/analytics", timeout_ms=200))
    with pytest.raises(PersistenceError):
        unreachable.persist(_summary())


def test_composite_sink_continues_past_failures(tmp_path: Path) -> None:
    good = JsonlAnalyticsSink(tmp_path)
    composite = CompositeSink([_BrokenSink(), good])

    with pytest.raises(PersistenceError) as exc:
        composite.persist(_summary())

    assert "disk full" in str(exc.value)
    assert len(load_summaries(tmp_path)) == 1


def test_build_sink_from_config(tmp_path: Path) -> None:
    jsonl_only = build_sink(PersistenceConfig(jsonl=JsonlSinkConfig(enabled=True, log_dir=tmp_path)))
    nothing = build_sink(
        PersistenceConfig(jsonl=JsonlSinkConfig(enabled=False), http=HttpSinkConfig(enabled=False))
    )
    both = build_sink(
        PersistenceConfig(
            jsonl=JsonlSinkConfig(enabled=True, log_dir=tmp_path),
            http=HttpSinkConfig(enabled=True, endpoint="http://127.0.0.1:9/analytics"),
        )
    )

    assert isinstance(jsonl_only, JsonlAnalyticsSink)
    assert jsonl_only.log_dir == tmp_path
    assert nothing is None
    assert isinstance(both, CompositeSink)
    sink_types: List[type] = [type(sink) for sink in both.sinks]
    assert sink_types == [JsonlAnalyticsSink, HttpAnalyticsSink]


def test_http_sink_disables_after_first_failure(caplog: pytest.LogCaptureFixture) -> None:
    class Handler(_AnalyticsHandler):
        status = 503

    with _run_server(Handler) as server:
        endpoint = f"http://127.0.0.1:{server.server_address[1]}/analytics"
        sink = HttpAnalyticsSink(HttpSinkConfig(enabled=True, endpoint=endpoint, timeout_ms=1000))
        with caplog.at_level(logging.WARNING, logger="chartexam.analytics.sinks"):
            for session_id in ("a", "b", "c"):
                with pytest.raises(PersistenceError):
                    sink.persist(_summary(session_id))

    assert len(Handler.events) == 1
    assert sink.disabled
    assert sink.last_error is not None and "503" in sink.last_error
    disable_warnings = [record for record in caplog.records if "Disabling HTTP analytics" in record.getMessage()]
    assert len(disable_warnings) == 1

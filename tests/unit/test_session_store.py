from __future__ import annotations

import time

import pytest

from chartexam.config.loader import (
    Config,
    PersistenceConfig,
    SessionConfig,
    DEFAULT_TIME_LIMITS_S,
)
from chartexam.session.store import SessionStore
from chartexam.session.types import ExamType, InvalidExamTypeError


class _Clock:
    def __init__(self, start_ms: int = 1_760_000_000_000) -> None:
        self.now_ms = start_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, seconds: float) -> None:
        self.now_ms += int(seconds * 1000)


def _config(*, time_limits: dict | None = None, grace_period_s: int = 300) -> Config:
    return Config(
        source=None,
        config_version="test-config",
        time_limits_s=dict(DEFAULT_TIME_LIMITS_S if time_limits is None else time_limits),
        session=SessionConfig(grace_period_s=grace_period_s, sweep_interval_s=1800, auto_create_missing=True),
        persistence=PersistenceConfig(),
    )


@pytest.mark.parametrize(
    "exam_type, expected_limit",
    [("swing", 180), ("fibonacci", 120), ("fvg", 150)],
)
def test_create_fixes_window_from_exam_type(exam_type: str, expected_limit: int) -> None:
    clock = _Clock()
    store = SessionStore(_config(), now_fn=clock)

    session = store.create("u1_key", "u1", exam_type, chart_count=1)

    assert session.exam_type is ExamType(exam_type)
    assert session.time_limit_s == expected_limit
    assert session.start_time_ms == clock.now_ms
    assert session.expires_at_ms == session.start_time_ms + expected_limit * 1000
    assert session.attempts == 0
    assert store.get("u1_key") is session


def test_exam_type_missing_from_config_falls_back_to_swing_limit() -> None:
    store = SessionStore(_config(time_limits={"swing": 180}), now_fn=_Clock())

    session = store.create("u1_fvg_1_1", "u1", "fvg", chart_count=1)

    assert session.time_limit_s == 180


def test_create_rejects_unknown_exam_type() -> None:
    store = SessionStore(_config(), now_fn=_Clock())

    with pytest.raises(InvalidExamTypeError):
        store.create("u1_candles_1_1", "u1", "candles", chart_count=1)
    assert len(store) == 0


def test_remove_and_pop() -> None:
    store = SessionStore(_config(), now_fn=_Clock())
    store.create("a", "u1", "swing", chart_count=1)
    store.create("b", "u1", "swing", chart_count=2)

    store.remove("a")
    store.remove("missing")
    popped = store.pop("b")

    assert "a" not in store
    assert popped is not None and popped.key == "b"
    assert store.pop("b") is None
    assert len(store) == 0


def test_sweep_respects_grace_period() -> None:
    clock = _Clock()
    store = SessionStore(_config(grace_period_s=300), now_fn=clock)
    store.create("old", "u1", "fibonacci", chart_count=1)
    clock.advance(200)
    store.create("fresh", "u1", "swing", chart_count=2)

    # "old" expired at +120s; its grace ends at +420s.
    clock.advance(220)
    assert store.sweep() == []
    assert "old" in store

    clock.advance(1)
    assert store.sweep() == ["old"]
    assert "old" not in store
    assert "fresh" in store


def test_apply_runs_callback_against_current_session() -> None:
    store = SessionStore(_config(), now_fn=_Clock())
    store.create("k", "u1", "swing", chart_count=1)

    def _bump(session):
        session.attempts += 1
        return session.attempts

    assert store.apply("k", _bump) == 1
    assert store.apply("k", _bump) == 2
    assert store.apply("missing", lambda session: session) is None


def test_sweeper_lifecycle_start_stop() -> None:
    store = SessionStore(_config(), now_fn=_Clock())

    store.start()
    store.start()
    assert store.running
    store.stop(timeout=1.0)
    assert not store.running


def test_sweeper_thread_evicts_on_interval() -> None:
    clock = _Clock()
    config = Config(
        source=None,
        config_version="test-config",
        time_limits_s=dict(DEFAULT_TIME_LIMITS_S),
        session=SessionConfig(grace_period_s=0, sweep_interval_s=0.01, auto_create_missing=True),
        persistence=PersistenceConfig(),
    )
    store = SessionStore(config, now_fn=clock)
    store.create("k", "u1", "swing", chart_count=1)
    clock.advance(181)

    store.start()
    try:
        deadline = time.monotonic() + 2.0
        while "k" in store and time.monotonic() < deadline:
            time.sleep(0.01)
    finally:
        store.stop(timeout=1.0)

    assert "k" not in store


def test_stores_are_isolated() -> None:
    first = SessionStore(_config(), now_fn=_Clock())
    second = SessionStore(_config(), now_fn=_Clock())

    first.create("k", "u1", "swing", chart_count=1)

    assert "k" in first
    assert "k" not in second

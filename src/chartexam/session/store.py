"""In-memory table of active exam sessions with a background TTL sweeper."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, List, Optional, TypeVar

from chartexam.config.loader import Config, default_config
from chartexam.session.types import ExamType, Session, ms_to_iso

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def _default_now_ms() -> int:
    return int(time.time() * 1000)


class SessionStore:
    """Keyed session table shared by the validator, recorders, finalizer and sweeper.

    Every read-modify-write goes through :meth:`apply`, which runs the callback
    under the table lock so per-key updates are never lost. The lock is
    re-entrant, so callbacks may call :meth:`create` or :meth:`remove`.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        *,
        now_fn: Optional[Callable[[], int]] = None,
    ) -> None:
        self._config = config or default_config()
        self._now = now_fn or _default_now_ms
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self._sweeper: Optional[threading.Thread] = None

    @property
    def config(self) -> Config:
        return self._config

    def now_ms(self) -> int:
        return self._now()

    def create(
        self,
        key: str,
        user_id: str,
        exam_type: ExamType | str,
        chart_count: int,
        part: int = 1,
    ) -> Session:
        """Create (or replace) the session for ``key`` with a fresh time window."""

        exam = ExamType.parse(exam_type)
        time_limit_s = self._config.time_limit_for(exam.value)
        now = self._now()
        session = Session(
            key=key,
            user_id=user_id,
            exam_type=exam,
            chart_count=chart_count,
            part=part,
            start_time_ms=now,
            expires_at_ms=now + time_limit_s * 1000,
            time_limit_s=time_limit_s,
        )
        with self._lock:
            previous = self._sessions.get(key)
            self._sessions[key] = session
        if previous is not None:
            LOGGER.info(
                "Restarting session: %s, discarding window that expired at %s after %d attempts",
                key,
                ms_to_iso(previous.expires_at_ms),
                previous.attempts,
            )
        LOGGER.info("Created session: %s, expires at: %s", key, ms_to_iso(session.expires_at_ms))
        return session

    def get(self, key: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(key)

    def remove(self, key: str) -> None:
        with self._lock:
            self._sessions.pop(key, None)

    def pop(self, key: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.pop(key, None)

    def apply(self, key: str, fn: Callable[[Optional[Session]], T]) -> T:
        """Run ``fn`` against the session for ``key`` while holding the table lock."""

        with self._lock:
            return fn(self._sessions.get(key))

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._sessions.keys())

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._sessions

    def sweep(self) -> List[str]:
        """Evict sessions whose grace period after expiry has elapsed."""

        now = self._now()
        grace_ms = self._config.session.grace_period_s * 1000
        with self._lock:
            expired = [
                key
                for key, session in self._sessions.items()
                if now > session.expires_at_ms + grace_ms
            ]
            for key in expired:
                del self._sessions[key]
        for key in expired:
            LOGGER.info("Cleaning up expired session: %s", key)
        return expired

    def start(self) -> None:
        """Launch the periodic sweeper thread; calling twice is a no-op."""

        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop_event.clear()
        self._sweeper = threading.Thread(
            target=self._sweep_loop,
            name="chartexam-session-sweeper",
            daemon=True,
        )
        self._sweeper.start()
        LOGGER.debug("Session sweeper started (interval=%ss)", self._config.session.sweep_interval_s)

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop_event.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=timeout)
            self._sweeper = None
        LOGGER.debug("Session sweeper stopped")

    @property
    def running(self) -> bool:
        return self._sweeper is not None and self._sweeper.is_alive()

    def _sweep_loop(self) -> None:
        interval = float(self._config.session.sweep_interval_s)
        while not self._stop_event.wait(interval):
            self.sweep()


__all__ = ["SessionStore"]

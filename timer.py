from __future__ import annotations
import logging
from datetime import datetime
from typing import Optional
from models import Session, SessionStatus
from stats import format_clock
from store import StudyStore

logger = logging.getLogger(__name__)

STOPWATCH_MIN_SECONDS = 10
POMODORO_MIN_SECONDS = 60


class Stopwatch:
    """
    Counts up once per tick while running. The caller owns the clock and
    calls tick() every second; ticking, pausing or stopping an idle
    stopwatch does nothing.
    """

    def __init__(self, store: StudyStore, min_seconds: int = STOPWATCH_MIN_SECONDS) -> None:
        self.store = store
        self.min_seconds = min_seconds
        self.subject_id: Optional[str] = None
        self.seconds = 0
        self.is_running = False

    def select(self, subject_id: Optional[str]) -> None:
        if self.is_running:
            raise RuntimeError("Cannot change subject while the timer is running.")
        self.subject_id = subject_id

    def start(self) -> bool:
        if self.is_running or not self.subject_id:
            return False
        self.is_running = True
        return True

    def pause(self) -> None:
        self.is_running = False

    def tick(self) -> None:
        if self.is_running:
            self.seconds += 1

    @property
    def display(self) -> str:
        return format_clock(self.seconds)

    def stop(self) -> Optional[Session]:
        session = None
        if self.seconds > self.min_seconds and self.subject_id:
            session = self.store.start_manual_session(self.subject_id, self.seconds)
        self.is_running = False
        self.seconds = 0
        return session


class PomodoroTimer:
    """
    Counts down from the configured pomodoro length. Running out records a
    completed session; finish() and abandon() end early.
    """

    def __init__(self, store: StudyStore, min_seconds: int = POMODORO_MIN_SECONDS) -> None:
        self.store = store
        self.min_seconds = min_seconds
        self.subject_id: Optional[str] = None
        self.remaining = 0
        self.is_running = False
        self._length = 0
        self._started_at: Optional[datetime] = None

    @property
    def length(self) -> int:
        """Seconds in the current run, or in the next one while idle."""
        return self._length or self.store.settings.pomodoro_duration * 60

    @property
    def elapsed(self) -> int:
        if not self._length:
            return 0
        return self._length - self.remaining

    @property
    def display(self) -> str:
        return format_clock(self.remaining if self._length else self.length)

    def select(self, subject_id: Optional[str]) -> None:
        if self.is_running:
            raise RuntimeError("Cannot change subject while the timer is running.")
        self.subject_id = subject_id

    def start(self) -> bool:
        if self.is_running or not self.subject_id:
            return False
        if not self._length:
            # settings changed mid-run apply to the next run only
            self._length = self.store.settings.pomodoro_duration * 60
            self.remaining = self._length
            self._started_at = datetime.now()
        self.is_running = True
        return True

    def pause(self) -> None:
        self.is_running = False

    def tick(self) -> Optional[Session]:
        if not self.is_running:
            return None
        self.remaining = max(0, self.remaining - 1)
        if self.remaining == 0:
            return self._end("completed", elapsed=self._length)
        return None

    def finish(self) -> Optional[Session]:
        return self._end("completed", elapsed=self.elapsed)

    def abandon(self) -> Optional[Session]:
        return self._end("incomplete", elapsed=self.elapsed)

    def _end(self, status: SessionStatus, elapsed: int) -> Optional[Session]:
        session = None
        if elapsed > self.min_seconds and self.subject_id:
            session = self.store.record_session({
                "subject_id": self.subject_id,
                "duration": elapsed,
                "start_time": self._started_at,
                "status": status,
            })
            logger.info("Pomodoro ended as %s after %ss", status, elapsed)
        self.is_running = False
        self.remaining = 0
        self._length = 0
        self._started_at = None
        return session


def advance(timer: Stopwatch | PomodoroTimer, seconds: int) -> Optional[Session]:
    """
    Apply several seconds of ticks at once, for callers that wake up less
    often than once a second. Stops early at the session a pomodoro
    records when it runs out.
    """
    for _ in range(max(0, seconds)):
        session = timer.tick()
        if session is not None:
            return session
    return None

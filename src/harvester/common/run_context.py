"""Run context: cancellation signal and pass timestamp for one crawl run."""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Callable

from .errors import AbortedError

DB_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def to_db_timestamp(value: datetime | None = None) -> str:
    """Format a datetime as the local ``YYYY-MM-DD HH:MM:SS`` storage form."""
    return (value or datetime.now()).strftime(DB_TIMESTAMP_FORMAT)


class RunContext:
    """State of a single crawl run, owned by the orchestrator.

    The cancellation flag is the only suspension point: it is checked
    before every network call and every delay, never mid-transfer.

    Args:
        clock: Callable returning the current datetime.
        started_at: Explicit start time; defaults to ``clock()``.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = datetime.now,
        started_at: datetime | None = None,
    ) -> None:
        self._cancel_event = threading.Event()
        self.clock = clock
        self.started_at = started_at or clock()
        self.scrape_timestamp = to_db_timestamp(self.started_at)

    def cancel(self) -> None:
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._cancel_event.is_set():
            raise AbortedError()

    def sleep(self, seconds: float) -> None:
        """Wait ``seconds``, raising AbortedError if cancelled before or during."""
        self.raise_if_cancelled()
        if seconds <= 0:
            return
        if self._cancel_event.wait(timeout=seconds):
            raise AbortedError()

    def now(self) -> str:
        return to_db_timestamp(self.clock())

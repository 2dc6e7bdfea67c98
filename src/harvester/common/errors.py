"""Exception taxonomy for the harvester core."""

from __future__ import annotations


class HarvesterError(Exception):
    """Base class for all harvester errors."""


class NetworkError(HarvesterError):
    """Timeout, DNS, connection or non-2xx failure for a single retrieval.

    Recovered by skipping the page or asset and continuing the run.
    """

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason


class AbortedError(HarvesterError):
    """The run was cancelled. Terminates the run cleanly."""

    def __init__(self, message: str = "Scrape aborted") -> None:
        super().__init__(message)


class ExtractionSkip(HarvesterError):
    """A candidate record lacks a name or a positive price."""


class PersistenceError(HarvesterError):
    """A storage read failed, or a write failed and was rolled back."""

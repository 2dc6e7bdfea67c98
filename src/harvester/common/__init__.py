"""Common utilities shared across harvester modules."""

from .config import Config
from .errors import (
    AbortedError,
    ExtractionSkip,
    HarvesterError,
    NetworkError,
    PersistenceError,
)
from .http_client import Fetcher
from .run_context import RunContext, to_db_timestamp

__all__ = [
    "AbortedError",
    "Config",
    "ExtractionSkip",
    "Fetcher",
    "HarvesterError",
    "NetworkError",
    "PersistenceError",
    "RunContext",
    "to_db_timestamp",
]

"""Database layer for harvester storage."""

from .connection import get_connection, init_db
from .models import Part, PartHistory, PartImageAsset, Vehicle
from .repository import Repository

__all__ = [
    "Part",
    "PartHistory",
    "PartImageAsset",
    "Repository",
    "Vehicle",
    "get_connection",
    "init_db",
]

"""Tracker Module - identities, change detection and the change timeline."""

from .change_tracker import ChangeTracker, diff_fields
from .history import build_change_timeline, changed_fields
from .identity import (
    generate_id,
    history_id,
    match_part,
    part_id,
    resolve_vehicle,
    vehicle_id,
)

__all__ = [
    "ChangeTracker",
    "build_change_timeline",
    "changed_fields",
    "diff_fields",
    "generate_id",
    "history_id",
    "match_part",
    "part_id",
    "resolve_vehicle",
    "vehicle_id",
]

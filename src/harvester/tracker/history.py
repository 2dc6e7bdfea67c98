"""Change timeline reconstructed from the parts history log.

Each history row holds the state of a part *before* a transition. Walking
a part's rows newest first, the state after each transition is either the
live row (for the newest entry) or the snapshot of the next-newer entry.
"""

from __future__ import annotations

from typing import Any, Iterable

_SNAPSHOT_FIELDS = (
    "part_number",
    "name",
    "description",
    "price",
    "currency",
    "image_url",
    "image_path",
    "is_deleted",
)


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _number(value: Any) -> float | None:
    if value is None or value == "":
        return None
    return float(value)


def changed_fields(row: dict, state_after: dict) -> list[str]:
    """Field names that differ between a history snapshot and the state after it."""
    if row.get("history_event") in ("deleted", "restored"):
        return ["availability"]
    if state_after.get("name") is None:
        return ["part_removed"]

    fields = []
    if _text(row.get("old_part_number")) != _text(state_after.get("part_number")):
        fields.append("part_number")
    if _text(row.get("old_name")) != _text(state_after.get("name")):
        fields.append("name")
    if _text(row.get("old_description")) != _text(state_after.get("description")):
        fields.append("description")
    if _number(row.get("old_price")) != _number(state_after.get("price")) or _text(
        row.get("old_currency")
    ) != _text(state_after.get("currency")):
        fields.append("price")
    if _text(row.get("old_image_url")) != _text(state_after.get("image_url")) or _text(
        row.get("old_image_path")
    ) != _text(state_after.get("image_path")):
        fields.append("image")
    return fields


def build_change_timeline(rows: Iterable[dict]) -> list[dict]:
    """Annotate history rows (newest first) with ``changed_fields``.

    Args:
        rows: Output of ``Repository.history_rows``, ordered newest first.

    Returns:
        The rows that changed something, each with a ``changed_fields``
        list, in the same order.
    """
    state_after_by_part: dict[str, dict] = {}
    timeline = []
    for row in rows:
        part_key = row["part_id"]
        state_after = state_after_by_part.get(part_key)
        if state_after is None:
            state_after = {f: row.get(f"current_{f}") for f in _SNAPSHOT_FIELDS}

        fields = changed_fields(row, state_after)
        state_after_by_part[part_key] = {f: row.get(f"old_{f}") for f in _SNAPSHOT_FIELDS}

        if fields:
            timeline.append({**row, "changed_fields": fields})
    return timeline

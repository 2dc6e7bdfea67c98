"""Row models for the harvester storage layer."""

from __future__ import annotations

import sqlite3
from dataclasses import asdict, dataclass, fields


class _RowModel:
    """Shared row conversion helpers."""

    @classmethod
    def from_row(cls, row: sqlite3.Row | dict):
        keys = {f.name for f in fields(cls)}  # type: ignore[arg-type]
        data = dict(row)
        return cls(**{k: v for k, v in data.items() if k in keys})

    def to_dict(self) -> dict:
        return asdict(self)  # type: ignore[call-overload]


@dataclass
class Vehicle(_RowModel):
    """A vehicle model whose parts are listed on one model page."""

    id: str
    brand: str
    model: str
    category: str
    url: str
    last_updated: str | None = None

    @property
    def label(self) -> str:
        return " ".join(v for v in (self.brand, self.model) if v).strip() or self.id


@dataclass
class Part(_RowModel):
    """A part of a vehicle. ``is_deleted`` rows are tombstones."""

    id: str
    vehicle_id: str
    name: str
    url: str
    part_number: str | None = None
    description: str = ""
    price: float | None = None
    currency: str = "EUR"
    image_url: str | None = None
    image_path: str | None = None
    scraped_at: str | None = None
    last_seen: str | None = None
    is_deleted: int = 0
    deleted_at: str | None = None


@dataclass
class PartHistory(_RowModel):
    """Append-only snapshot of a part taken just before a transition."""

    id: str
    part_id: str
    vehicle_id: str
    name: str
    history_event: str  # updated | deleted | restored
    recorded_at: str
    part_number: str | None = None
    description: str = ""
    price: float | None = None
    currency: str = "EUR"
    image_url: str | None = None
    image_path: str | None = None
    url: str | None = None
    is_deleted: int = 0
    deleted_at: str | None = None

    @classmethod
    def snapshot(
        cls,
        history_id: str,
        part: Part,
        event: str,
        recorded_at: str,
        image_path: str | None = None,
    ) -> PartHistory:
        """Capture the full field-set of ``part``.

        ``image_path`` overrides the part's own path when a backup of the
        previous image content is the accurate picture for this snapshot.
        """
        return cls(
            id=history_id,
            part_id=part.id,
            vehicle_id=part.vehicle_id,
            name=part.name,
            part_number=part.part_number,
            description=part.description or "",
            price=part.price,
            currency=part.currency or "EUR",
            image_url=part.image_url,
            image_path=image_path if image_path is not None else part.image_path,
            url=part.url,
            history_event=event,
            is_deleted=int(part.is_deleted or 0),
            deleted_at=part.deleted_at,
            recorded_at=recorded_at,
        )


@dataclass
class PartImageAsset(_RowModel):
    """One distinct image observed for a part."""

    part_id: str
    image_url: str
    image_path: str | None = None
    sort_order: int = 0
    id: int | None = None

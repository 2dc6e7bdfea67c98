"""Row-level persistence for vehicles, parts, part history and part images.

The change tracker and the asset synchronizer talk to storage only
through this class. Writes are grouped with ``transaction()``; a failed
group is rolled back and surfaces as PersistenceError, as does a failed
read.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from typing import Iterable, Iterator

from ..common.config import Config
from ..common.errors import PersistenceError
from .connection import get_connection
from .models import Part, PartHistory, PartImageAsset, Vehicle

logger = logging.getLogger(__name__)

MAX_HISTORY_LIMIT = 5000


class Repository:
    """SQLite-backed storage for one crawl run.

    Usage:
        with Repository(config) as repo:
            with repo.transaction():
                repo.insert_part(part)
    """

    def __init__(self, config: Config | None = None, conn: sqlite3.Connection | None = None) -> None:
        self.config = config or Config()
        self._conn = conn or get_connection(self.config)
        self._depth = 0

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    @contextmanager
    def transaction(self) -> Iterator[Repository]:
        """Group writes; commit on success, roll back on any error.

        Nested use joins the outermost transaction.
        """
        self._depth += 1
        try:
            yield self
        except sqlite3.Error as exc:
            self._depth -= 1
            if self._depth == 0:
                self._conn.rollback()
            raise PersistenceError(str(exc)) from exc
        except BaseException:
            self._depth -= 1
            if self._depth == 0:
                self._conn.rollback()
            raise
        else:
            self._depth -= 1
            if self._depth == 0:
                try:
                    self._conn.commit()
                except sqlite3.Error as exc:
                    self._conn.rollback()
                    raise PersistenceError(str(exc)) from exc

    def _fetchone(self, sql: str, params: Iterable = ()) -> sqlite3.Row | None:
        try:
            return self._conn.execute(sql, tuple(params)).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(str(exc)) from exc

    def _fetchall(self, sql: str, params: Iterable = ()) -> list[sqlite3.Row]:
        try:
            return self._conn.execute(sql, tuple(params)).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(str(exc)) from exc

    # --- Vehicles ---

    def find_vehicle_by_url(self, url: str) -> Vehicle | None:
        row = self._fetchone("SELECT * FROM vehicles WHERE url = ? LIMIT 1", (url,))
        return Vehicle.from_row(row) if row else None

    def find_vehicle_by_id(self, vehicle_id: str) -> Vehicle | None:
        row = self._fetchone("SELECT * FROM vehicles WHERE id = ?", (vehicle_id,))
        return Vehicle.from_row(row) if row else None

    def insert_vehicle(self, vehicle: Vehicle) -> None:
        self._conn.execute(
            """
            INSERT INTO vehicles (id, brand, model, category, url, last_updated)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                vehicle.id,
                vehicle.brand,
                vehicle.model,
                vehicle.category,
                vehicle.url,
                vehicle.last_updated,
            ),
        )

    def update_vehicle(self, vehicle: Vehicle) -> None:
        self._conn.execute(
            """
            UPDATE vehicles
            SET brand = ?, model = ?, category = ?, url = ?, last_updated = ?
            WHERE id = ?
            """,
            (
                vehicle.brand,
                vehicle.model,
                vehicle.category,
                vehicle.url,
                vehicle.last_updated,
                vehicle.id,
            ),
        )

    # --- Parts ---

    def get_part(self, part_id: str) -> Part | None:
        row = self._fetchone("SELECT * FROM parts WHERE id = ?", (part_id,))
        return Part.from_row(row) if row else None

    def find_part(
        self,
        vehicle_id: str,
        part_number: str | None = None,
        name: str | None = None,
    ) -> Part | None:
        """Match by (vehicle, part number) when given, else by (vehicle, name)."""
        if part_number:
            row = self._fetchone(
                "SELECT * FROM parts WHERE vehicle_id = ? AND part_number = ? LIMIT 1",
                (vehicle_id, part_number),
            )
        else:
            row = self._fetchone(
                "SELECT * FROM parts WHERE vehicle_id = ? AND name = ? LIMIT 1",
                (vehicle_id, name),
            )
        return Part.from_row(row) if row else None

    def list_parts(self, vehicle_id: str) -> list[Part]:
        rows = self._fetchall(
            "SELECT * FROM parts WHERE vehicle_id = ? ORDER BY name ASC, id ASC",
            (vehicle_id,),
        )
        return [Part.from_row(r) for r in rows]

    def insert_part(self, part: Part) -> None:
        self._conn.execute(
            """
            INSERT INTO parts (id, vehicle_id, name, part_number, description, price,
                               currency, image_url, image_path, url, scraped_at,
                               last_seen, is_deleted, deleted_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                part.id,
                part.vehicle_id,
                part.name,
                part.part_number,
                part.description,
                part.price,
                part.currency,
                part.image_url,
                part.image_path,
                part.url,
                part.scraped_at,
                part.last_seen,
                int(part.is_deleted),
                part.deleted_at,
            ),
        )

    def update_part_values(self, part: Part) -> None:
        """Apply newly extracted values to a live row."""
        self._conn.execute(
            """
            UPDATE parts
            SET name = ?, description = ?, price = ?, currency = ?,
                image_url = ?, image_path = ?, url = ?, scraped_at = ?
            WHERE id = ?
            """,
            (
                part.name,
                part.description,
                part.price,
                part.currency,
                part.image_url,
                part.image_path,
                part.url,
                part.scraped_at,
                part.id,
            ),
        )

    def mark_seen(self, part_id: str, seen_at: str) -> None:
        """Stamp a part as present in this pass and clear any tombstone.

        The primary image path is replaced by the locally stored asset
        path whenever one exists for the part's current image URL.
        """
        self._conn.execute(
            """
            UPDATE parts
            SET image_path = COALESCE(
                    (SELECT pi.image_path
                     FROM part_images pi
                     WHERE pi.part_id = parts.id
                       AND pi.image_url = parts.image_url
                       AND pi.image_path IS NOT NULL
                     ORDER BY pi.sort_order ASC, pi.id ASC
                     LIMIT 1),
                    image_path
                ),
                last_seen = ?,
                is_deleted = 0,
                deleted_at = NULL
            WHERE id = ?
            """,
            (seen_at, part_id),
        )

    def list_unseen_active_parts(self, vehicle_id: str, seen_ids: Iterable[str]) -> list[Part]:
        """Live parts of ``vehicle_id`` whose ids are not in ``seen_ids``."""
        seen = list(dict.fromkeys(seen_ids))
        sql = "SELECT * FROM parts WHERE vehicle_id = ? AND is_deleted = 0"
        params: list = [vehicle_id]
        if seen:
            placeholders = ",".join("?" for _ in seen)
            sql += f" AND id NOT IN ({placeholders})"
            params.extend(seen)
        sql += " ORDER BY name ASC, id ASC"
        rows = self._fetchall(sql, params)
        return [Part.from_row(r) for r in rows]

    def mark_deleted(self, part_id: str, deleted_at: str) -> None:
        self._conn.execute(
            "UPDATE parts SET is_deleted = 1, deleted_at = ? WHERE id = ? AND is_deleted = 0",
            (deleted_at, part_id),
        )

    # --- History ---

    def insert_history(self, entry: PartHistory) -> None:
        self._conn.execute(
            """
            INSERT INTO part_history (id, part_id, vehicle_id, name, part_number,
                                      description, price, currency, image_url,
                                      image_path, url, history_event, is_deleted,
                                      deleted_at, recorded_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                entry.id,
                entry.part_id,
                entry.vehicle_id,
                entry.name,
                entry.part_number,
                entry.description,
                entry.price,
                entry.currency,
                entry.image_url,
                entry.image_path,
                entry.url,
                entry.history_event,
                int(entry.is_deleted),
                entry.deleted_at,
                entry.recorded_at,
            ),
        )

    def list_history(self, part_id: str) -> list[PartHistory]:
        """Timeline of one part, oldest first."""
        rows = self._fetchall(
            "SELECT * FROM part_history WHERE part_id = ? ORDER BY recorded_at ASC, rowid ASC",
            (part_id,),
        )
        return [PartHistory.from_row(r) for r in rows]

    def history_rows(self, part_id: str | None = None, limit: int = 1000) -> list[dict]:
        """History entries joined with their vehicle and the live part, newest first."""
        limit = max(1, min(int(limit), MAX_HISTORY_LIMIT))
        where_sql = "WHERE ph.part_id = ?" if part_id else ""
        params: list = [part_id, limit] if part_id else [limit]
        rows = self._fetchall(
            f"""
            SELECT
                ph.id AS history_id,
                ph.part_id,
                ph.recorded_at,
                ph.history_event,
                ph.vehicle_id,
                v.brand,
                v.model,
                ph.part_number AS old_part_number,
                ph.name AS old_name,
                ph.description AS old_description,
                ph.price AS old_price,
                ph.currency AS old_currency,
                ph.image_url AS old_image_url,
                ph.image_path AS old_image_path,
                ph.is_deleted AS old_is_deleted,
                ph.deleted_at AS old_deleted_at,
                p.part_number AS current_part_number,
                p.name AS current_name,
                p.description AS current_description,
                p.price AS current_price,
                p.currency AS current_currency,
                p.image_url AS current_image_url,
                p.image_path AS current_image_path,
                p.is_deleted AS current_is_deleted,
                p.deleted_at AS current_deleted_at
            FROM part_history ph
            JOIN vehicles v ON v.id = ph.vehicle_id
            LEFT JOIN parts p ON p.id = ph.part_id
            {where_sql}
            ORDER BY ph.recorded_at DESC, ph.rowid DESC
            LIMIT ?
            """,
            params,
        )
        return [dict(r) for r in rows]

    # --- Images ---

    def upsert_image_asset(self, asset: PartImageAsset) -> None:
        """Insert the (part, url) row once; fill in the local path when known."""
        self._conn.execute(
            """
            INSERT OR IGNORE INTO part_images (part_id, image_url, image_path, sort_order)
            VALUES (?, ?, ?, ?)
            """,
            (asset.part_id, asset.image_url, asset.image_path, asset.sort_order),
        )
        if asset.image_path:
            self._conn.execute(
                "UPDATE part_images SET image_path = ? WHERE part_id = ? AND image_url = ?",
                (asset.image_path, asset.part_id, asset.image_url),
            )

    def list_image_assets(self, part_id: str) -> list[PartImageAsset]:
        rows = self._fetchall(
            """
            SELECT id, part_id, image_url, image_path, sort_order
            FROM part_images
            WHERE part_id = ?
            ORDER BY sort_order ASC, id ASC
            """,
            (part_id,),
        )
        return [PartImageAsset.from_row(r) for r in rows]

    # --- Stats ---

    def stats(self) -> dict:
        def count(sql: str) -> int:
            return self._fetchone(sql)[0] or 0

        return {
            "vehicles": count("SELECT COUNT(*) FROM vehicles"),
            "brands": count("SELECT COUNT(DISTINCT brand) FROM vehicles"),
            "parts": count("SELECT COUNT(*) FROM parts"),
            "deleted_parts": count("SELECT COUNT(*) FROM parts WHERE is_deleted = 1"),
            "history_entries": count("SELECT COUNT(*) FROM part_history"),
            "images": count("SELECT COUNT(*) FROM part_images"),
        }

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> Repository:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

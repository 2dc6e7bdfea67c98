"""SQLite database connection and schema management."""

from __future__ import annotations

import sqlite3
import logging

from ..common.config import Config

logger = logging.getLogger(__name__)

_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS vehicles (
    id TEXT PRIMARY KEY,
    brand TEXT NOT NULL,
    model TEXT NOT NULL,
    category TEXT NOT NULL,
    url TEXT NOT NULL,
    last_updated TEXT DEFAULT (datetime('now', 'localtime'))
);

CREATE INDEX IF NOT EXISTS idx_vehicles_brand
    ON vehicles(brand);

CREATE INDEX IF NOT EXISTS idx_vehicles_url
    ON vehicles(url);

CREATE TABLE IF NOT EXISTS parts (
    id TEXT PRIMARY KEY,
    vehicle_id TEXT NOT NULL,
    name TEXT NOT NULL,
    part_number TEXT,
    description TEXT,
    price REAL,
    currency TEXT DEFAULT 'EUR',
    image_url TEXT,
    image_path TEXT,
    url TEXT NOT NULL,
    scraped_at TEXT,
    last_seen TEXT,
    is_deleted INTEGER NOT NULL DEFAULT 0,
    deleted_at TEXT,
    FOREIGN KEY (vehicle_id) REFERENCES vehicles(id)
);

CREATE INDEX IF NOT EXISTS idx_parts_vehicle
    ON parts(vehicle_id);

CREATE TABLE IF NOT EXISTS part_history (
    id TEXT PRIMARY KEY,
    part_id TEXT NOT NULL,
    vehicle_id TEXT NOT NULL,
    name TEXT NOT NULL,
    part_number TEXT,
    description TEXT,
    price REAL,
    currency TEXT DEFAULT 'EUR',
    image_url TEXT,
    image_path TEXT,
    url TEXT,
    history_event TEXT NOT NULL DEFAULT 'updated',
    is_deleted INTEGER NOT NULL DEFAULT 0,
    deleted_at TEXT,
    recorded_at TEXT NOT NULL,
    FOREIGN KEY (part_id) REFERENCES parts(id)
);

CREATE INDEX IF NOT EXISTS idx_part_history_part
    ON part_history(part_id, recorded_at);

CREATE TABLE IF NOT EXISTS part_images (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    part_id TEXT NOT NULL,
    image_url TEXT NOT NULL,
    image_path TEXT,
    sort_order INTEGER NOT NULL DEFAULT 0,
    created_at TEXT DEFAULT (datetime('now', 'localtime')),
    UNIQUE (part_id, image_url),
    FOREIGN KEY (part_id) REFERENCES parts(id)
);

CREATE INDEX IF NOT EXISTS idx_part_images_part
    ON part_images(part_id);
"""


def get_connection(config: Config | None = None) -> sqlite3.Connection:
    """Get a SQLite connection with row factory enabled.

    Args:
        config: Optional Config. Uses defaults if not provided.

    Returns:
        sqlite3.Connection with Row factory.
    """
    config = config or Config()
    db_path = config.database_abs_path
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def init_db(config: Config | None = None) -> None:
    """Initialize database schema (idempotent).

    Args:
        config: Optional Config. Uses defaults if not provided.
    """
    config = config or Config()
    conn = get_connection(config)
    try:
        conn.executescript(_SCHEMA_SQL)
        conn.commit()
        logger.info("Database schema initialized at %s", config.database_abs_path)
    finally:
        conn.close()

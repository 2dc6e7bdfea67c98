"""Tests for the schema and the repository."""

from __future__ import annotations

import sqlite3

import pytest

from src.harvester.common.errors import PersistenceError
from src.harvester.database.connection import get_connection, init_db
from src.harvester.database.models import Part, PartHistory, PartImageAsset, Vehicle
from src.harvester.database.repository import MAX_HISTORY_LIMIT, Repository

TS1 = "2026-01-01 10:00:00"
TS2 = "2026-01-02 10:00:00"


@pytest.fixture
def vehicle(repo) -> Vehicle:
    v = Vehicle(id="v1", brand="Aprilia", model="MX 125", category="motorcycles", url="https://x.net/a.htm")
    with repo.transaction():
        repo.insert_vehicle(v)
    return v


def _part(**overrides) -> Part:
    values = dict(
        id="p1",
        vehicle_id="v1",
        name="Tank",
        url="https://x.net/a.htm",
        part_number="12345",
        price=45.0,
        image_url="https://x.net/images/MX125/tank.jpg",
        scraped_at=TS1,
        last_seen=TS1,
    )
    values.update(overrides)
    return Part(**values)


class TestSchema:
    """Schema creation."""

    def test_init_db_creates_tables(self, temp_config):
        conn = get_connection(temp_config)
        tables = {
            r["name"] for r in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
        }
        conn.close()
        assert {"vehicles", "parts", "part_history", "part_images"} <= tables

    def test_init_db_is_idempotent(self, temp_config):
        init_db(temp_config)
        init_db(temp_config)

    def test_connection_settings(self, temp_config):
        conn = get_connection(temp_config)
        assert conn.row_factory is sqlite3.Row
        assert conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1
        conn.close()


class TestTransaction:
    """Grouped writes."""

    def test_commit(self, repo, vehicle):
        with repo.transaction():
            repo.insert_part(_part())
        assert repo.get_part("p1").name == "Tank"

    def test_sqlite_error_rolls_back_and_wraps(self, repo, vehicle):
        with pytest.raises(PersistenceError):
            with repo.transaction():
                repo.insert_part(_part(id="p2", name="Seat"))
                repo.insert_part(_part(id="p2", name="Seat again"))
        assert repo.get_part("p2") is None

    def test_other_errors_roll_back_and_propagate(self, repo, vehicle):
        with pytest.raises(RuntimeError):
            with repo.transaction():
                repo.insert_part(_part(id="p3"))
                raise RuntimeError("boom")
        assert repo.get_part("p3") is None

    def test_nested_joins_outer(self, repo, vehicle):
        with pytest.raises(PersistenceError):
            with repo.transaction():
                with repo.transaction():
                    repo.insert_part(_part(id="p4"))
                repo.insert_part(_part(id="p4"))
        assert repo.get_part("p4") is None


class TestParts:
    """Part lookups, stamps and tombstones."""

    def test_mark_seen_prefers_stored_asset_path(self, repo, vehicle):
        with repo.transaction():
            repo.insert_part(_part())
            repo.upsert_image_asset(
                PartImageAsset(part_id="p1", image_url=_part().image_url, image_path="images/MX125/tank.jpg")
            )
            repo.mark_seen("p1", TS2)
        part = repo.get_part("p1")
        assert part.image_path == "images/MX125/tank.jpg"
        assert part.last_seen == TS2

    def test_mark_seen_keeps_path_without_asset(self, repo, vehicle):
        with repo.transaction():
            repo.insert_part(_part(image_path="images/old.jpg"))
            repo.mark_seen("p1", TS2)
        assert repo.get_part("p1").image_path == "images/old.jpg"

    def test_mark_seen_clears_tombstone(self, repo, vehicle):
        with repo.transaction():
            repo.insert_part(_part(is_deleted=1, deleted_at=TS1))
            repo.mark_seen("p1", TS2)
        part = repo.get_part("p1")
        assert part.is_deleted == 0
        assert part.deleted_at is None

    def test_unseen_active_parts(self, repo, vehicle):
        with repo.transaction():
            repo.insert_part(_part(id="a", name="A"))
            repo.insert_part(_part(id="b", name="B"))
            repo.insert_part(_part(id="c", name="C", is_deleted=1, deleted_at=TS1))
        assert [p.id for p in repo.list_unseen_active_parts("v1", ["a"])] == ["b"]
        assert [p.id for p in repo.list_unseen_active_parts("v1", [])] == ["a", "b"]

    def test_mark_deleted_only_once(self, repo, vehicle):
        with repo.transaction():
            repo.insert_part(_part())
            repo.mark_deleted("p1", TS1)
            repo.mark_deleted("p1", TS2)
        part = repo.get_part("p1")
        assert part.is_deleted == 1
        assert part.deleted_at == TS1


class TestImageAssets:
    """One row per (part, url)."""

    def test_upsert_is_unique_and_fills_path(self, repo, vehicle):
        url = "https://x.net/images/MX125/tank.jpg"
        with repo.transaction():
            repo.insert_part(_part())
            repo.upsert_image_asset(PartImageAsset(part_id="p1", image_url=url, sort_order=0))
            repo.upsert_image_asset(PartImageAsset(part_id="p1", image_url=url, image_path="images/MX125/tank.jpg"))
            repo.upsert_image_asset(PartImageAsset(part_id="p1", image_url=url, sort_order=0))
        assets = repo.list_image_assets("p1")
        assert len(assets) == 1
        assert assets[0].image_path == "images/MX125/tank.jpg"

    def test_sort_order(self, repo, vehicle):
        with repo.transaction():
            repo.insert_part(_part())
            repo.upsert_image_asset(PartImageAsset(part_id="p1", image_url="https://x.net/images/b.jpg", sort_order=1))
            repo.upsert_image_asset(PartImageAsset(part_id="p1", image_url="https://x.net/images/a.jpg", sort_order=0))
        assert [a.image_url for a in repo.list_image_assets("p1")] == [
            "https://x.net/images/a.jpg",
            "https://x.net/images/b.jpg",
        ]


class TestHistory:
    """History rows and statistics."""

    def test_history_order_and_join(self, repo, vehicle):
        part = _part()
        with repo.transaction():
            repo.insert_part(part)
            repo.insert_history(PartHistory.snapshot("h1", part, "updated", TS1))
            repo.insert_history(PartHistory.snapshot("h2", part, "deleted", TS1))
            repo.insert_history(PartHistory.snapshot("h3", part, "restored", TS2))

        assert [h.id for h in repo.list_history("p1")] == ["h1", "h2", "h3"]

        rows = repo.history_rows(part_id="p1")
        assert [r["history_id"] for r in rows] == ["h3", "h2", "h1"]
        assert rows[0]["brand"] == "Aprilia"
        assert rows[0]["old_name"] == "Tank"
        assert rows[0]["current_price"] == 45.0

    def test_history_limit(self, repo, vehicle):
        part = _part()
        with repo.transaction():
            repo.insert_part(part)
            for i in range(5):
                repo.insert_history(PartHistory.snapshot(f"h{i}", part, "updated", TS1))
        assert len(repo.history_rows(limit=2)) == 2
        assert len(repo.history_rows(limit=0)) == 1
        assert len(repo.history_rows(limit=MAX_HISTORY_LIMIT * 10)) == 5

    def test_snapshot_image_override(self):
        part = _part(image_path="images/MX125/tank.jpg")
        entry = PartHistory.snapshot("h", part, "updated", TS2, image_path="images/_history/MX125/tank__1.jpg")
        assert entry.image_path == "images/_history/MX125/tank__1.jpg"
        assert PartHistory.snapshot("h", part, "updated", TS2).image_path == "images/MX125/tank.jpg"

    def test_stats(self, repo, vehicle):
        with repo.transaction():
            repo.insert_part(_part())
            repo.insert_part(_part(id="p2", name="Seat", part_number=None, is_deleted=1, deleted_at=TS1))
        stats = repo.stats()
        assert stats["vehicles"] == 1
        assert stats["brands"] == 1
        assert stats["parts"] == 2
        assert stats["deleted_parts"] == 1
        assert stats["history_entries"] == 0


class TestRepositoryLifecycle:

    def test_context_manager_closes(self, temp_config):
        with Repository(temp_config) as repo:
            conn = repo.conn
        with pytest.raises(sqlite3.ProgrammingError):
            conn.execute("SELECT 1")

    def test_failed_read_raises_persistence_error(self, temp_config):
        repo = Repository(temp_config)
        repo.close()
        with pytest.raises(PersistenceError):
            repo.get_part("p1")
        with pytest.raises(PersistenceError):
            repo.list_unseen_active_parts("v1", ["p1"])

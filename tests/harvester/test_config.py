"""Tests for configuration and the run context."""

from __future__ import annotations

import threading
import time
from datetime import datetime

import pytest

from src.harvester.common.config import DEFAULT_SITE_ROOT, Config, load_categories
from src.harvester.common.errors import AbortedError
from src.harvester.common.run_context import RunContext, to_db_timestamp


@pytest.fixture
def clean_env(monkeypatch):
    for var in (
        "DATABASE_PATH",
        "IMAGES_DIR",
        "REQUEST_TIMEOUT",
        "PAGE_DELAY_SECONDS",
        "USER_AGENT",
        "ROTATE_USER_AGENT",
        "SITE_ROOT",
        "CACHE_RAW_HTML",
        "CATEGORIES_FILE",
    ):
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


class TestConfig:
    """Defaults and environment overrides."""

    def test_defaults(self, clean_env):
        config = Config()
        assert config.request_timeout == 10.0
        assert config.page_delay == 0.5
        assert config.site_root == DEFAULT_SITE_ROOT
        assert config.currencies == ("EUR",)
        assert config.rotate_user_agent is False
        assert config.categories[0].url == f"{DEFAULT_SITE_ROOT}lista.htm"
        assert config.categories[0].category == "motorcycles"

    def test_env_overrides(self, clean_env):
        clean_env.setenv("REQUEST_TIMEOUT", "3")
        clean_env.setenv("PAGE_DELAY_SECONDS", "0")
        clean_env.setenv("SITE_ROOT", "https://mirror.example.net")
        clean_env.setenv("ROTATE_USER_AGENT", "true")
        config = Config()
        assert config.request_timeout == 3.0
        assert config.page_delay == 0.0
        assert config.site_root == "https://mirror.example.net/"
        assert config.rotate_user_agent is True

    def test_relative_paths_resolve_against_project_root(self, clean_env, project_root):
        config = Config(database_path="data/test.sqlite")
        assert config.database_abs_path == project_root / "data" / "test.sqlite"

    def test_absolute_paths_kept(self, clean_env, tmp_path):
        config = Config(images_dir=str(tmp_path / "imgs"))
        assert config.images_abs_dir == tmp_path / "imgs"

    def test_categories_from_yaml(self, clean_env, tmp_path):
        path = tmp_path / "categories.yaml"
        path.write_text(
            "categories:\n"
            "  - name: MOPOT\n"
            "    url: https://www.purkuosat.net/mopot.htm\n"
            "    category: mopeds\n",
            encoding="utf-8",
        )
        clean_env.setenv("CATEGORIES_FILE", str(path))
        config = Config()
        assert [(c.name, c.category) for c in config.categories] == [("MOPOT", "mopeds")]
        assert load_categories(path)[0].url == "https://www.purkuosat.net/mopot.htm"


class TestRunContext:
    """Pass timestamp and cancellation."""

    def test_timestamp_format(self):
        context = RunContext(started_at=datetime(2026, 3, 4, 5, 6, 7))
        assert context.scrape_timestamp == "2026-03-04 05:06:07"
        assert to_db_timestamp(datetime(2026, 12, 31, 23, 59, 59)) == "2026-12-31 23:59:59"

    def test_clock_is_injectable(self):
        context = RunContext(clock=lambda: datetime(2026, 1, 1, 0, 0, 0))
        assert context.scrape_timestamp == "2026-01-01 00:00:00"
        assert context.now() == "2026-01-01 00:00:00"

    def test_cancel(self):
        context = RunContext()
        context.raise_if_cancelled()
        context.cancel()
        assert context.cancelled
        with pytest.raises(AbortedError):
            context.raise_if_cancelled()

    def test_sleep_is_interrupted_by_cancel(self):
        context = RunContext()
        threading.Timer(0.05, context.cancel).start()
        started = time.monotonic()
        with pytest.raises(AbortedError):
            context.sleep(5)
        assert time.monotonic() - started < 2

    def test_sleep_zero(self):
        RunContext().sleep(0)

"""Shared test fixtures for the parts harvester."""

import sys
from datetime import datetime
from pathlib import Path

import pytest

# Ensure src is importable
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.common.models import CategorySource
from src.harvester.common.config import Config
from src.harvester.common.run_context import RunContext
from src.harvester.database.connection import init_db
from src.harvester.database.repository import Repository

SITE_ROOT = "https://www.purkuosat.net/"


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def fixtures_dir() -> Path:
    """Return the test fixtures directory."""
    return PROJECT_ROOT / "tests" / "fixtures"


@pytest.fixture
def temp_config(tmp_path, monkeypatch):
    """Provide a Config pointing to a temporary SQLite database and image root."""
    for var in ("REQUEST_TIMEOUT", "PAGE_DELAY_SECONDS", "USER_AGENT", "ROTATE_USER_AGENT", "SITE_ROOT"):
        monkeypatch.delenv(var, raising=False)
    config = Config(
        database_path=str(tmp_path / "test_harvester.db"),
        images_dir=str(tmp_path / "images"),
        raw_html_cache_dir=str(tmp_path / "raw_html"),
        cache_raw_html=False,
        page_delay=0.0,
        site_root=SITE_ROOT,
        categories=[
            CategorySource(name="PURKUPYÖRÄT", url=f"{SITE_ROOT}lista.htm", category="motorcycles"),
        ],
    )
    init_db(config)
    return config


@pytest.fixture
def repo(temp_config):
    """Provide an initialized Repository on the temporary database."""
    repository = Repository(temp_config)
    yield repository
    repository.close()


@pytest.fixture
def make_context():
    """Build a RunContext whose pass timestamp is fixed."""

    def _make(hour: int = 10, minute: int = 0, day: int = 1) -> RunContext:
        return RunContext(started_at=datetime(2026, 1, day, hour, minute, 0))

    return _make

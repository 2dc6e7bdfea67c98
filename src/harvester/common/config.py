"""Configuration management for the harvester."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml
from dotenv import load_dotenv

from src.common.models import CategorySource

# Load .env from project root
_PROJECT_ROOT = Path(__file__).resolve().parents[3]
load_dotenv(_PROJECT_ROOT / ".env")

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
)
DEFAULT_SITE_ROOT = "https://www.purkuosat.net/"
_DEFAULT_CATEGORIES_FILE = _PROJECT_ROOT / "config" / "categories.yaml"


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def load_categories(path: Path) -> list[CategorySource]:
    """Load listing pages from a YAML file with a ``categories:`` list."""
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return [CategorySource(**item) for item in data.get("categories", [])]


@dataclass
class Config:
    """Central configuration loaded from environment variables."""

    # Storage
    database_path: str = field(
        default_factory=lambda: os.getenv("DATABASE_PATH", "data/database.sqlite")
    )
    images_dir: str = field(
        default_factory=lambda: os.getenv("IMAGES_DIR", "data/images")
    )

    # Audit cache
    raw_html_cache_dir: str = field(
        default_factory=lambda: os.getenv("RAW_HTML_CACHE_DIR", "data/raw_html")
    )
    cache_raw_html: bool = field(
        default_factory=lambda: _env_flag("CACHE_RAW_HTML")
    )

    # Fetching
    request_timeout: float = 10.0
    page_delay: float = 0.5
    user_agent: str = DEFAULT_USER_AGENT
    rotate_user_agent: bool = False

    # Site
    site_root: str = DEFAULT_SITE_ROOT
    currencies: tuple[str, ...] = ("EUR",)
    categories: list[CategorySource] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Load overrides from environment."""
        if timeout := os.getenv("REQUEST_TIMEOUT"):
            self.request_timeout = float(timeout)
        if delay := os.getenv("PAGE_DELAY_SECONDS"):
            self.page_delay = float(delay)
        if ua := os.getenv("USER_AGENT"):
            self.user_agent = ua
        self.rotate_user_agent = _env_flag("ROTATE_USER_AGENT", self.rotate_user_agent)
        if root := os.getenv("SITE_ROOT"):
            self.site_root = root
        if not self.site_root.endswith("/"):
            self.site_root += "/"

        if not self.categories:
            categories_file = os.getenv("CATEGORIES_FILE")
            path = Path(categories_file) if categories_file else _DEFAULT_CATEGORIES_FILE
            if path.exists():
                self.categories = load_categories(path)
            else:
                self.categories = [
                    CategorySource(
                        name="PURKUPYÖRÄT",
                        url=f"{self.site_root}lista.htm",
                        category="motorcycles",
                    )
                ]

    @staticmethod
    def _resolve(value: str) -> Path:
        p = Path(value)
        if p.is_absolute():
            return p
        return _PROJECT_ROOT / p

    @property
    def database_abs_path(self) -> Path:
        """Resolve database path relative to project root."""
        return self._resolve(self.database_path)

    @property
    def images_abs_dir(self) -> Path:
        """Resolve image root relative to project root."""
        return self._resolve(self.images_dir)

    @property
    def raw_html_cache_abs_dir(self) -> Path:
        """Resolve raw HTML cache dir relative to project root."""
        return self._resolve(self.raw_html_cache_dir)

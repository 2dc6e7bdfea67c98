"""Content-aware synchronization of part images with versioned backups.

For each remote image the local file size and the remote Content-Length
are looked up concurrently. Equal sizes mean the transfer is skipped.
Otherwise the image is downloaded; a download whose length equals the
local size is still treated as unchanged. A replaced local file is first
copied to ``_history/`` so earlier history snapshots keep a picture.
"""

from __future__ import annotations

import logging
import shutil
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Iterable

from src.common.models import ImageOutcome, ImageStatus
from ..common.config import Config
from ..common.errors import NetworkError
from ..common.http_client import Fetcher
from ..common.run_context import RunContext
from ..database.models import PartImageAsset
from ..database.repository import Repository
from .paths import backup_relative_path, display_path, local_relative_path

logger = logging.getLogger(__name__)


def unique_urls(urls: Iterable[str | None]) -> list[str]:
    return list(dict.fromkeys(u for u in urls if u))


class AssetSynchronizer:
    """Keeps the local image mirror in step with remote images.

    Args:
        config: Provides the local image root.
        fetcher: Network access for probes and downloads.
        millis: Clock in epoch milliseconds, used to name backups.
    """

    def __init__(
        self,
        config: Config,
        fetcher: Fetcher,
        millis: Callable[[], int] = lambda: int(time.time() * 1000),
    ) -> None:
        self.config = config
        self.fetcher = fetcher
        self._millis = millis

    @property
    def root(self) -> Path:
        return self.config.images_abs_dir

    def ensure_images_dir(self) -> Path:
        self.root.mkdir(parents=True, exist_ok=True)
        return self.root

    @staticmethod
    def _local_size(path: Path) -> int | None:
        try:
            return path.stat().st_size if path.is_file() else None
        except OSError:
            return None

    def sync_image(self, image_url: str, context: RunContext | None = None) -> ImageOutcome | None:
        """Bring one image up to date locally.

        Returns None when the image could not be mirrored (no usable local
        path, network or filesystem failure). AbortedError propagates.
        """
        relative = local_relative_path(image_url)
        if not relative:
            logger.warning("Unable to derive local path from URL: %s", image_url)
            return None

        target = self.root / relative
        shown = display_path(relative)

        with ThreadPoolExecutor(max_workers=2) as pool:
            local_future = pool.submit(self._local_size, target)
            remote_future = pool.submit(self.fetcher.probe_content_length, image_url, context)
            local_size = local_future.result()
            remote_size = remote_future.result()

        if local_size is not None and remote_size is not None and local_size == remote_size:
            return ImageOutcome(url=image_url, path=shown, size=local_size, status=ImageStatus.UNCHANGED)

        try:
            data = self.fetcher.get_bytes(image_url, context)
        except NetworkError as exc:
            logger.error("Failed to download image from %s: %s", image_url, exc.reason)
            return None

        if local_size is not None and local_size == len(data):
            return ImageOutcome(url=image_url, path=shown, size=local_size, status=ImageStatus.UNCHANGED)

        backup_path = None
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            if local_size is not None:
                backup_rel = backup_relative_path(relative, self._millis())
                backup_abs = self.root / backup_rel
                backup_abs.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(target, backup_abs)
                backup_path = display_path(backup_rel)
            target.write_bytes(data)
        except OSError as exc:
            logger.error("Failed to store image %s at %s: %s", image_url, target, exc)
            return None

        return ImageOutcome(
            url=image_url,
            path=shown,
            size=len(data),
            status=ImageStatus.NEW if local_size is None else ImageStatus.UPDATED,
            backup_path=backup_path,
        )

    def download_all(
        self,
        image_urls: Iterable[str | None],
        context: RunContext | None = None,
    ) -> dict[str, ImageOutcome]:
        """Synchronize every distinct URL, one download at a time."""
        outcomes: dict[str, ImageOutcome] = {}
        for url in unique_urls(image_urls):
            outcome = self.sync_image(url, context)
            if outcome is not None:
                outcomes[url] = outcome
        return outcomes

    @staticmethod
    def record_assets(
        repo: Repository,
        part_id: str,
        image_urls: Iterable[str | None],
        outcomes: dict[str, ImageOutcome],
    ) -> list[PartImageAsset]:
        """Upsert one asset row per distinct URL in first-discovery order."""
        assets = []
        for sort_order, url in enumerate(unique_urls(image_urls)):
            outcome = outcomes.get(url)
            asset = PartImageAsset(
                part_id=part_id,
                image_url=url,
                image_path=outcome.path if outcome else None,
                sort_order=sort_order,
            )
            repo.upsert_image_asset(asset)
            assets.append(asset)
        return assets

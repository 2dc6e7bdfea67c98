"""Asset Module - local image mirror with versioned backups."""

from .image_sync import AssetSynchronizer, unique_urls
from .paths import (
    backup_relative_path,
    display_path,
    images_shorthand,
    local_relative_path,
)

__all__ = [
    "AssetSynchronizer",
    "backup_relative_path",
    "display_path",
    "images_shorthand",
    "local_relative_path",
    "unique_urls",
]

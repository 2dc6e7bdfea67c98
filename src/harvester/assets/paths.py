"""Mapping of remote image URLs to local asset paths."""

from __future__ import annotations

from pathlib import PurePosixPath
from urllib.parse import unquote, urlsplit

ASSET_ROOT_MARKER = "/images/"
DISPLAY_PREFIX = "images/"
HISTORY_DIR = "_history"


def local_relative_path(image_url: str) -> str | None:
    """Relative path under the local image root for ``image_url``.

    Everything after the first ``/images/`` segment is kept (the whole
    path when there is none). Empty, ``.`` and ``..`` segments are dropped,
    so the result never escapes the image root.

    >>> local_relative_path("https://example.net/images/MX125/DSCN3304.JPG")
    'MX125/DSCN3304.JPG'
    """
    try:
        parts = urlsplit(image_url)
    except ValueError:
        return None
    if not parts.scheme or not parts.netloc:
        return None
    normalized = unquote(parts.path).replace("\\", "/")
    idx = normalized.lower().find(ASSET_ROOT_MARKER)
    relative = normalized[idx + len(ASSET_ROOT_MARKER):] if idx >= 0 else normalized.lstrip("/")
    segments = [seg for seg in relative.split("/") if seg and seg not in (".", "..")]
    if not segments:
        return None
    return "/".join(segments)


def display_path(relative: str) -> str:
    """Stored form of a local asset path (``images/<relative>``)."""
    return DISPLAY_PREFIX + relative.replace("\\", "/")


def backup_relative_path(relative: str, millis: int) -> str:
    """``_history/<dir>/<stem>__<millis><suffix>`` for a superseded image."""
    p = PurePosixPath(relative)
    name = f"{p.stem}__{millis}{p.suffix}"
    parent = str(p.parent)
    if parent in ("", "."):
        return f"{HISTORY_DIR}/{name}"
    return f"{HISTORY_DIR}/{parent}/{name}"


def images_shorthand(value: str | None) -> str | None:
    """Short ``images/...`` form of a URL or path for log output."""
    raw = (value or "").strip()
    if not raw:
        return None
    if raw.startswith(DISPLAY_PREFIX):
        return raw
    try:
        parts = urlsplit(raw)
    except ValueError:
        return raw
    if parts.scheme and parts.netloc:
        path = unquote(parts.path).replace("\\", "/")
        idx = path.lower().find(ASSET_ROOT_MARKER)
        if idx >= 0:
            return path[idx + 1:]
    return raw

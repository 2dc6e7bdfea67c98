"""HTTP fetcher with bounded timeouts, cooperative cancellation and raw HTML caching."""

from __future__ import annotations

import hashlib
import logging
from datetime import datetime
from pathlib import Path

import requests
from fake_useragent import UserAgent

from .config import Config
from .errors import AbortedError, NetworkError
from .run_context import RunContext

logger = logging.getLogger(__name__)


class Fetcher:
    """Single-shot HTTP retrieval of pages and byte resources.

    Features:
    - Bounded timeout per call (``Config.request_timeout``)
    - Cancellation checked before and after every call
    - Conventional or rotating User-Agent
    - Optional raw HTML caching for audit trail

    No retries are performed here: a failed page is the caller's to skip.
    """

    def __init__(self, config: Config | None = None) -> None:
        self.config = config or Config()
        self._session = requests.Session()
        self._ua = UserAgent(fallback=self.config.user_agent) if self.config.rotate_user_agent else None

        if self.config.cache_raw_html:
            self.config.raw_html_cache_abs_dir.mkdir(parents=True, exist_ok=True)

    def _headers(self) -> dict[str, str]:
        if self._ua is not None:
            return {"User-Agent": self._ua.random}
        return {"User-Agent": self.config.user_agent}

    def _request(self, method: str, url: str, context: RunContext | None) -> requests.Response:
        if context is not None:
            context.raise_if_cancelled()
        try:
            resp = self._session.request(
                method,
                url,
                headers=self._headers(),
                timeout=self.config.request_timeout,
                allow_redirects=True,
            )
            resp.raise_for_status()
        except requests.RequestException as exc:
            if context is not None and context.cancelled:
                raise AbortedError() from exc
            raise NetworkError(url, str(exc)) from exc
        if context is not None and context.cancelled:
            raise AbortedError()
        return resp

    def get_text(
        self,
        url: str,
        context: RunContext | None = None,
        cache_key: str | None = None,
    ) -> str:
        """Fetch a page and return its decoded body.

        Args:
            url: Target URL.
            context: Run context carrying the cancellation signal.
            cache_key: Optional key for raw HTML caching (only used when
                       ``Config.cache_raw_html`` is on).

        Raises:
            NetworkError: On timeout, DNS, connection or HTTP failure.
            AbortedError: If the run was cancelled before or during the call.
        """
        resp = self._request("GET", url, context)
        if cache_key and self.config.cache_raw_html:
            self._cache_response(cache_key, resp.text)
        return resp.text

    def get_bytes(self, url: str, context: RunContext | None = None) -> bytes:
        """Fetch a binary resource (image) and return its bytes."""
        return self._request("GET", url, context).content

    def probe_content_length(self, url: str, context: RunContext | None = None) -> int | None:
        """Metadata-only check of a remote resource's size.

        Returns None when the size is unknown or the probe failed; the
        probe never raises NetworkError.
        """
        try:
            resp = self._request("HEAD", url, context)
        except NetworkError as exc:
            logger.debug("Content probe failed for %s: %s", url, exc.reason)
            return None
        return parse_content_length(resp.headers.get("Content-Length"))

    def _cache_response(self, cache_key: str, html: str) -> Path:
        """Save raw HTML to cache directory for audit.

        File naming: {cache_key}_{date}_{hash}.html
        """
        date_str = datetime.now().strftime("%Y%m%d")
        content_hash = hashlib.md5(html.encode()).hexdigest()[:8]
        safe_key = "".join(c if c.isalnum() or c in "-_" else "_" for c in cache_key)
        filename = f"{safe_key}_{date_str}_{content_hash}.html"
        path = self.config.raw_html_cache_abs_dir / filename
        path.write_text(html, encoding="utf-8")
        logger.debug("Cached HTML: %s", path)
        return path

    def close(self) -> None:
        """Close the underlying session."""
        self._session.close()

    def __enter__(self) -> Fetcher:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


def parse_content_length(raw: str | None) -> int | None:
    if not raw:
        return None
    try:
        value = int(raw)
    except ValueError:
        return None
    return value if value >= 0 else None

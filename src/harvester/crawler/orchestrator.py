"""Crawl orchestration: listing pages → model pages → parts.

One run walks every configured listing page, visits each matching model
page in order, tracks its parts and tombstones the parts that vanished.
Failures on one page are logged and the run moves on; a cancelled run
stops at the next network call or delay and is reported as aborted.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Callable, Iterable

from bs4 import BeautifulSoup

from src.common.models import CategorySource, CrawlSummary, ModelLink, PartOutcome
from ..assets.image_sync import AssetSynchronizer
from ..common.config import Config
from ..common.errors import AbortedError, HarvesterError, NetworkError
from ..common.http_client import Fetcher
from ..common.run_context import RunContext
from ..database.repository import Repository
from ..extractor.links import (
    extract_brand_model,
    extract_model_links,
    matches_filters,
    normalize_model_url,
    parse_filters,
)
from ..extractor.part_table import PartTableExtractor
from ..tracker.change_tracker import ChangeTracker
from ..tracker.identity import resolve_vehicle

logger = logging.getLogger(__name__)

DEFAULT_SCRAPE_ONE_URL = "https://www.purkuosat.net/apriliamx12505.htm"
DEFAULT_SCRAPE_ONE_LABEL = "Aprilia 125"


class Crawler:
    """Runs crawl passes against the listing site.

    Args:
        config: Harvester configuration.
        fetcher: Network access; created from ``config`` when omitted.
        repo: Storage; opened from ``config`` when omitted.
        progress: Optional callable receiving every PartOutcome.
        clock: Source of the pass timestamp.

    Usage:
        with Crawler(Config()) as crawler:
            summary = crawler.run(filters="aprilia 125,cagiva")
    """

    def __init__(
        self,
        config: Config | None = None,
        fetcher: Fetcher | None = None,
        repo: Repository | None = None,
        progress: Callable[[PartOutcome], None] | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.config = config or Config()
        self._owns_fetcher = fetcher is None
        self._owns_repo = repo is None
        self.fetcher = fetcher or Fetcher(self.config)
        self.repo = repo or Repository(self.config)
        self.progress = progress
        self.clock = clock
        self.extractor = PartTableExtractor(self.config.site_root, self.config.currencies)
        self.assets = AssetSynchronizer(self.config, self.fetcher)

    def new_context(self) -> RunContext:
        return RunContext(clock=self.clock)

    def run(
        self,
        filters: str | Iterable[str] | None = None,
        max_links: int | None = None,
        download_images: bool = True,
        context: RunContext | None = None,
    ) -> CrawlSummary:
        """Crawl every configured listing page.

        Args:
            filters: Filter expression(s); OR across comma-separated
                groups, AND across words inside a group.
            max_links: Visit at most this many links per listing page
                (applied before filtering).
            download_images: When False, no image is fetched.
            context: Run context; a fresh one is created when omitted.

        Returns:
            Totals for the run. ``aborted`` is set when it was cancelled.
        """
        context = context or self.new_context()
        summary = CrawlSummary(started_at=context.scrape_timestamp)
        groups = parse_filters(filters)
        if download_images:
            self.assets.ensure_images_dir()

        try:
            for source in self.config.categories:
                self._crawl_category(source, groups, max_links, download_images, context, summary)
            logger.info("Scraping complete.")
        except AbortedError:
            logger.info("Scraping aborted.")
            summary.aborted = True
        return summary

    def _crawl_category(
        self,
        source: CategorySource,
        groups: list[list[str]],
        max_links: int | None,
        download_images: bool,
        context: RunContext,
        summary: CrawlSummary,
    ) -> None:
        context.raise_if_cancelled()
        logger.info("Fetching category: %s", source.name)
        try:
            html = self.fetcher.get_text(source.url, context, cache_key=f"listing_{source.name}")
        except NetworkError as exc:
            logger.error("Error fetching category %s: %s", source.name, exc.reason)
            summary.pages_failed += 1
            return

        soup = BeautifulSoup(html, "lxml")
        links = extract_model_links(soup, self.config.site_root, source.category)
        logger.info("Found %d model pages", len(links))
        if max_links and max_links > 0:
            links = links[:max_links]
            logger.info("Limit: scraping first %d model page(s)", len(links))

        for i, link in enumerate(links, start=1):
            context.raise_if_cancelled()
            brand, model = extract_brand_model(link.text)
            if not matches_filters(groups, link.text, brand, model):
                continue
            logger.info("[%d/%d] %s", i, len(links), link.text)
            logger.info("    %s", link.href)
            self.scrape_model_page(link, groups, download_images, context, summary)
            context.sleep(self.config.page_delay)

    def scrape_model_page(
        self,
        link: ModelLink,
        filters: str | Iterable[str] | list[list[str]] | None = None,
        download_images: bool = True,
        context: RunContext | None = None,
        summary: CrawlSummary | None = None,
    ) -> bool:
        """Visit one model page: resolve its vehicle, track parts, tombstone the rest.

        Returns:
            True when the page was processed, False when it was skipped
            or failed. AbortedError propagates.
        """
        context = context or self.new_context()
        summary = summary or CrawlSummary(started_at=context.scrape_timestamp)
        groups = _as_groups(filters)

        brand, model = extract_brand_model(link.text)
        if not matches_filters(groups, link.text, brand, model):
            return False

        page_url = normalize_model_url(link.href)
        try:
            html = self.fetcher.get_text(page_url, context, cache_key=f"model_{brand}_{model}")
        except NetworkError as exc:
            logger.error("Error scraping %s: %s", link.text, exc.reason)
            summary.pages_failed += 1
            return False

        def on_outcome(outcome: PartOutcome) -> None:
            summary.record(outcome)
            if self.progress is not None:
                self.progress(outcome)

        try:
            vehicle = resolve_vehicle(self.repo, link, context)
            records = self.extractor.extract(html, page_url)
            tracker = ChangeTracker(self.repo, self.assets, download_images, progress=on_outcome)
            seen_ids, _ = tracker.track_parts(vehicle, records, page_url, context)
            tracker.reconcile(vehicle, seen_ids, context)
        except AbortedError:
            raise
        except (HarvesterError, sqlite3.Error) as exc:
            # Partial pages are never reconciled, so nothing is tombstoned.
            logger.error("Error processing %s: %s", link.text, exc)
            summary.pages_failed += 1
            return False

        summary.pages_visited += 1
        return True

    def scrape_one(
        self,
        url: str = DEFAULT_SCRAPE_ONE_URL,
        label: str = DEFAULT_SCRAPE_ONE_LABEL,
        filters: str | Iterable[str] | None = None,
        download_images: bool = True,
        category: str = "motorcycles",
        context: RunContext | None = None,
    ) -> CrawlSummary:
        """Scrape a single model page outside of a listing walk."""
        context = context or self.new_context()
        summary = CrawlSummary(started_at=context.scrape_timestamp)
        if download_images:
            self.assets.ensure_images_dir()
        logger.info("Scraping single model page %s", url)
        link = ModelLink(text=label, href=url, category=category)
        try:
            self.scrape_model_page(link, filters, download_images, context, summary)
            logger.info("Single-page scrape completed")
        except AbortedError:
            logger.info("Scraping aborted.")
            summary.aborted = True
        return summary

    def close(self) -> None:
        if self._owns_fetcher:
            self.fetcher.close()
        if self._owns_repo:
            self.repo.close()

    def __enter__(self) -> Crawler:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


def _as_groups(filters: str | Iterable[str] | list[list[str]] | None) -> list[list[str]]:
    """Accept raw expressions or already-parsed filter groups."""
    if isinstance(filters, list) and all(isinstance(g, list) for g in filters):
        return filters
    return parse_filters(filters)

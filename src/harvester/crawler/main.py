"""CLI entry point for the parts harvester.

Usage:
    python -m src.harvester.crawler.main crawl
    python -m src.harvester.crawler.main crawl --filter "aprilia 125,cagiva" --max-links 5
    python -m src.harvester.crawler.main scrape-one https://www.purkuosat.net/apriliamx12505.htm --label "Aprilia 125"
    python -m src.harvester.crawler.main history --part-id <id> --limit 50
    python -m src.harvester.crawler.main stats
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import signal

from src.common.logging import setup_logging
from ..common.config import Config
from ..common.run_context import RunContext
from ..database.connection import init_db
from ..database.repository import Repository
from ..tracker.history import build_change_timeline
from .orchestrator import DEFAULT_SCRAPE_ONE_LABEL, DEFAULT_SCRAPE_ONE_URL, Crawler

logger = logging.getLogger(__name__)


def _install_interrupt_handler(context: RunContext) -> None:
    """First Ctrl+C cancels the run gracefully; a second one exits hard."""

    def handler(signum, frame):
        if context.cancelled:
            raise KeyboardInterrupt
        logger.info("Interrupt received, stopping after the current step...")
        context.cancel()

    signal.signal(signal.SIGINT, handler)


def _write_output(data: dict | list, path: str | None) -> None:
    text = json.dumps(data, ensure_ascii=False, indent=2)
    if path:
        with open(path, "w", encoding="utf-8") as f:
            f.write(text)
        logger.info("Output written to %s", path)
    else:
        print(text)


def cmd_crawl(args: argparse.Namespace, config: Config) -> int:
    with Crawler(config) as crawler:
        context = crawler.new_context()
        _install_interrupt_handler(context)
        summary = crawler.run(
            filters=args.filter,
            max_links=args.max_links,
            download_images=not args.no_images,
            context=context,
        )
    logger.info(
        "Pages: %d visited, %d failed | Parts: %d new, %d updated, %d restored, %d deleted, %d failed",
        summary.pages_visited,
        summary.pages_failed,
        summary.parts_inserted,
        summary.parts_updated,
        summary.parts_restored,
        summary.parts_deleted,
        summary.parts_failed,
    )
    if args.output:
        _write_output(summary.model_dump(mode="json"), args.output)
    return 130 if summary.aborted else 0


def cmd_scrape_one(args: argparse.Namespace, config: Config) -> int:
    with Crawler(config) as crawler:
        context = crawler.new_context()
        _install_interrupt_handler(context)
        summary = crawler.scrape_one(
            url=args.url,
            label=args.label,
            filters=args.filter,
            download_images=not args.no_images,
            context=context,
        )
    return 130 if summary.aborted else 0


def cmd_history(args: argparse.Namespace, config: Config) -> int:
    with Repository(config) as repo:
        rows = repo.history_rows(part_id=args.part_id, limit=args.limit)
    _write_output(build_change_timeline(rows), args.output)
    return 0


def cmd_stats(args: argparse.Namespace, config: Config) -> int:
    with Repository(config) as repo:
        _write_output(repo.stats(), args.output)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Vehicle Parts Harvester")
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    crawl = sub.add_parser("crawl", help="Crawl every configured listing page")
    crawl.add_argument(
        "--filter",
        type=str,
        help="Brand/model filter, e.g. 'aprilia 125,cagiva' (OR by comma, AND by word)",
    )
    crawl.add_argument(
        "--max-links",
        type=int,
        help="Visit at most N model pages per listing page",
    )
    crawl.add_argument("--no-images", action="store_true", help="Skip image downloads")
    crawl.add_argument("--output", type=str, help="Write the run summary as JSON to this file")
    crawl.set_defaults(func=cmd_crawl)

    one = sub.add_parser("scrape-one", help="Scrape a single model page")
    one.add_argument("url", nargs="?", default=DEFAULT_SCRAPE_ONE_URL, help="Model page URL")
    one.add_argument("--label", type=str, default=DEFAULT_SCRAPE_ONE_LABEL, help="Link text (brand and model)")
    one.add_argument("--filter", type=str, help="Brand/model filter")
    one.add_argument("--no-images", action="store_true", help="Skip image downloads")
    one.set_defaults(func=cmd_scrape_one)

    history = sub.add_parser("history", help="Print the change timeline as JSON")
    history.add_argument("--part-id", type=str, help="Only this part")
    history.add_argument("--limit", type=int, default=1000, help="Max history entries (default: 1000)")
    history.add_argument("--output", type=str, help="Output JSON file path")
    history.set_defaults(func=cmd_history)

    stats = sub.add_parser("stats", help="Print storage counts")
    stats.add_argument("--output", type=str, help="Output JSON file path")
    stats.set_defaults(func=cmd_stats)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    level_name = "DEBUG" if args.verbose else os.getenv("LOG_LEVEL", "INFO").upper()
    setup_logging(level=getattr(logging, level_name, logging.INFO))

    config = Config()
    init_db(config)
    return args.func(args, config)


if __name__ == "__main__":
    raise SystemExit(main())

"""Crawler Module - crawl orchestration and the command-line interface."""

from .orchestrator import Crawler

__all__ = ["Crawler"]

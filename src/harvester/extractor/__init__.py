"""Extractor Module - listing links, filters and part-record parsing."""

from .links import (
    extract_brand_model,
    extract_model_links,
    matches_filters,
    normalize_model_url,
    parse_filters,
    to_brand_case,
)
from .part_table import PartTableExtractor, clean_text, dedupe_parts, resolve_url

__all__ = [
    "PartTableExtractor",
    "clean_text",
    "dedupe_parts",
    "extract_brand_model",
    "extract_model_links",
    "matches_filters",
    "normalize_model_url",
    "parse_filters",
    "resolve_url",
    "to_brand_case",
]

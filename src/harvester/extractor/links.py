"""Listing-page link discovery, brand/model parsing and filter expressions."""

from __future__ import annotations

import logging
import re
from typing import Iterable
from urllib.parse import urlsplit, urlunsplit

from bs4 import BeautifulSoup

from src.common.models import ModelLink

logger = logging.getLogger(__name__)

# Navigation entries in the main column that are not model pages.
_NAV_LINK_RE = re.compile(
    r"^(PURKUO|Home|TARVIKE|RENKAAT|ÖLJY|OSTAMME|MYYNTI|YHTEYSTIEDOT|FAQ|OHJEET|Pakoputki)",
    re.IGNORECASE,
)
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")
_WHITESPACE_RE = re.compile(r"\s+")

MAIN_COLUMN_SELECTOR = "#column_l a[href*='.htm']"
UNKNOWN = "Unknown"


def extract_model_links(
    soup: BeautifulSoup,
    site_root: str,
    category: str = "motorcycles",
) -> list[ModelLink]:
    """Collect model-page links from the main column of a listing page.

    Links are deduplicated by href; the first position is kept and the
    last text seen wins.
    """
    links: dict[str, ModelLink] = {}
    for anchor in soup.select(MAIN_COLUMN_SELECTOR):
        href = (anchor.get("href") or "").strip()
        text = _WHITESPACE_RE.sub(" ", anchor.get_text() or "").strip()
        if not href or len(text) <= 2 or _NAV_LINK_RE.match(text):
            continue
        full_url = href if href.startswith("http") else f"{site_root}{href.lstrip('/')}"
        links[full_url] = ModelLink(text=text, href=full_url, category=category)
    return list(links.values())


def normalize_model_url(url: str) -> str:
    """Drop the fragment and surrounding whitespace from a model URL."""
    raw = (url or "").strip()
    try:
        parts = urlsplit(raw)
    except ValueError:
        return raw
    if not parts.scheme or not parts.netloc:
        return raw
    return urlunsplit((parts.scheme, parts.netloc, parts.path or "/", parts.query, ""))


def to_brand_case(value: str) -> str:
    """Short tokens are acronyms (KTM, BMW); longer ones are title-cased."""
    token = (value or "").strip()
    if not token:
        return ""
    if len(token) <= 3:
        return token.upper()
    return token[0].upper() + token[1:].lower()


def extract_brand_model(title: str) -> tuple[str, str]:
    """Split link text into (brand, model).

    >>> extract_brand_model("aprilia RS 125")
    ('Aprilia', 'RS 125')
    """
    cleaned = _WHITESPACE_RE.sub(" ", title or "").strip()
    if not cleaned:
        return UNKNOWN, UNKNOWN
    tokens = cleaned.split(" ")
    brand = to_brand_case(tokens[0])
    model = " ".join(tokens[1:]).strip()
    return brand or UNKNOWN, model or UNKNOWN


def _loose(text: str) -> str:
    return _NON_ALNUM_RE.sub(" ", (text or "").lower()).strip()


def parse_filters(expressions: str | Iterable[str] | None) -> list[list[str]]:
    """Parse brand/model filter expressions into token groups.

    A string is split on commas into groups; each group is a set of
    space-separated tokens. ``"aprilia 125,cagiva"`` becomes
    ``[["aprilia", "125"], ["cagiva"]]``.
    """
    if not expressions:
        return []
    if isinstance(expressions, str):
        expressions = expressions.split(",")
    groups = []
    for expr in expressions:
        tokens = _loose(str(expr or "")).split()
        if tokens:
            groups.append(tokens)
    return groups


def matches_filters(filters: list[list[str]], *texts: str) -> bool:
    """OR across groups, AND within a group; no filters matches everything."""
    if not filters:
        return True
    haystack = _loose(" ".join(t or "" for t in texts))
    return any(all(token in haystack for token in group) for group in filters)

"""Part-record extraction from loosely patterned model-page tables.

A model page lists parts as blocks of table rows. A block starts at a row
carrying the ``OSA`` marker (the part name is the last meaningful cell of
that row) and runs until the next marker or the end of the table. Rows
inside a block carry the part number (``OSANRO``), a description
(``LISÄTIEDOT``) and the price (``<number> EUR``) in no fixed order.

Records without a name or a positive price are dropped silently.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup, Tag

from src.common.models import ExtractedPart
from ..common.errors import ExtractionSkip

logger = logging.getLogger(__name__)

_BLOCK_START_RE = re.compile(r"^OSA(?![A-ZÅÄÖ])", re.IGNORECASE)
_PLACEHOLDER_RE = re.compile(r"^-+$")
_PART_NUMBER_RE = re.compile(r"OSANRO\s*[:\-]?\s*([A-Z0-9._-]+)", re.IGNORECASE)
_ALT_PART_NUMBER_RE = re.compile(r"RS\d+")
_WHITESPACE_RE = re.compile(r"\s+")

PART_NUMBER_MARKER = "OSANRO"
DESCRIPTION_MARKERS = ("LISÄTIEDOT", "LISATIEDOT")


def clean_text(value: str | None) -> str:
    """Normalize non-breaking spaces and collapse whitespace."""
    return _WHITESPACE_RE.sub(" ", (value or "").replace("\u00a0", " ")).strip()


def is_block_start(text: str) -> bool:
    return bool(_BLOCK_START_RE.match(text or ""))


def price_pattern(currencies: Iterable[str]) -> re.Pattern[str]:
    codes = "|".join(re.escape(c) for c in currencies)
    return re.compile(rf"(\d+(?:[,.]\d{{1,2}})?)\s*({codes})")


def resolve_url(src: str | None, base: str, site_root: str) -> str | None:
    """Resolve an image reference found on ``base``.

    Absolute URLs pass through, protocol-relative URLs get ``https:``,
    relative paths resolve against the page URL; when the page URL is
    unusable the site root is prefixed instead.
    """
    if not src:
        return None
    if src.startswith("http"):
        return src
    if src.startswith("//"):
        return "https:" + src
    try:
        parts = urlsplit(base)
        if not parts.scheme or not parts.netloc:
            raise ValueError(f"not an absolute URL: {base!r}")
        return urljoin(base, src)
    except ValueError:
        return f"{site_root}{src.lstrip('/')}"


def _part_name(marker_texts: list[str]) -> str:
    """Last meaningful cell of a marker row, without the marker itself."""
    for text in reversed(marker_texts):
        if not text or _PLACEHOLDER_RE.match(text):
            continue
        if is_block_start(text):
            text = _BLOCK_START_RE.sub("", text).strip(" :-")
            if not text:
                continue
        return text
    return ""


def _cells(row: Tag) -> list[Tag]:
    return row.find_all("td")


def _image_ref(img: Tag) -> str:
    parent = img.parent
    if isinstance(parent, Tag) and parent.name == "a" and parent.get("href"):
        return parent["href"].strip()
    return (img.get("src") or "").strip()


class PartTableExtractor:
    """Recovers part records from the tables of one model page.

    Usage:
        extractor = PartTableExtractor(site_root="https://www.example.net/")
        parts = extractor.extract(html, page_url)
    """

    def __init__(self, site_root: str, currencies: Iterable[str] = ("EUR",)) -> None:
        self.site_root = site_root
        self.currencies = tuple(currencies)
        self._price_re = price_pattern(self.currencies)

    def extract(self, document: str | bytes | BeautifulSoup, page_url: str) -> list[ExtractedPart]:
        """Parse a model page into a deduplicated list of part records."""
        soup = document if isinstance(document, BeautifulSoup) else BeautifulSoup(document, "lxml")
        candidates: list[ExtractedPart] = []
        for table in soup.find_all("table"):
            candidates.extend(self._scan_table(table, page_url))
        parts = dedupe_parts(candidates)
        logger.info("Found %d parts on %s", len(parts), page_url)
        return parts

    def _scan_table(self, table: Tag, page_url: str) -> list[ExtractedPart]:
        rows = table.find_all("tr")
        found: list[ExtractedPart] = []
        i = 0
        while i < len(rows):
            cells = _cells(rows[i])
            texts = [clean_text(c.get_text()) for c in cells]
            if not cells or not any(is_block_start(t) for t in texts):
                i += 1
                continue

            end = self._block_end(rows, i)
            try:
                found.append(self._build_record(table, rows, i, end, texts, page_url))
            except ExtractionSkip as exc:
                logger.debug("Skipping block in %s: %s", page_url, exc)
            i = end
        return found

    @staticmethod
    def _block_end(rows: list[Tag], start: int) -> int:
        j = start + 1
        while j < len(rows):
            texts = [clean_text(c.get_text()) for c in _cells(rows[j])]
            if any(is_block_start(t) for t in texts):
                break
            j += 1
        return j

    def _build_record(
        self,
        table: Tag,
        rows: list[Tag],
        start: int,
        end: int,
        marker_texts: list[str],
        page_url: str,
    ) -> ExtractedPart:
        name = _part_name(marker_texts)
        part_number = ""
        description = ""
        price = 0.0
        currency = self.currencies[0]

        for row in rows[start + 1:end]:
            cells = _cells(row)
            if not cells:
                continue
            texts = [clean_text(c.get_text()) for c in cells]
            label = texts[0].upper()
            row_text = " ".join(texts).strip()

            if not part_number and PART_NUMBER_MARKER in label:
                direct = texts[1] if len(texts) > 1 else ""
                if direct and direct != "0":
                    part_number = direct
                else:
                    m = _PART_NUMBER_RE.search(row_text)
                    if m and m.group(1) != "0":
                        part_number = m.group(1)

            if not description and any(marker in label for marker in DESCRIPTION_MARKERS):
                description = (texts[1] if len(texts) > 1 else "") or " ".join(texts[1:])

            m = self._price_re.search(row_text)
            if m:
                price = float(m.group(1).replace(",", "."))
                currency = m.group(2)

        if not name:
            raise ExtractionSkip("block has no part name")
        if price <= 0:
            raise ExtractionSkip(f"part '{name}' has no positive price")

        image_urls, image_alt = self._discover_images(table, page_url)
        if not image_urls:
            logger.debug("No image found for part '%s' in detected block", name)
        if not part_number and image_alt:
            m = _ALT_PART_NUMBER_RE.search(image_alt)
            if m:
                part_number = m.group(0)

        return ExtractedPart(
            name=name.strip(),
            part_number=part_number,
            description=description.strip(),
            price=price,
            currency=currency,
            image_url=image_urls[0] if image_urls else None,
            image_urls=image_urls,
        )

    def _discover_images(self, table: Tag, page_url: str) -> tuple[list[str], str]:
        """Image candidates for a block and the first image's alt text.

        Every image in the enclosing table counts, since rowspanned
        thumbnails sit outside the block's own rows.
        """
        candidates: dict[str, None] = {}
        table_imgs = table.find_all("img")
        for img in table_imgs:
            resolved = resolve_url(_image_ref(img), page_url, self.site_root)
            if resolved:
                candidates[resolved] = None
        if not candidates:
            return [], ""
        return list(candidates), table_imgs[0].get("alt") or ""


def dedupe_parts(parts: Iterable[ExtractedPart]) -> list[ExtractedPart]:
    """Merge records sharing a part number (or name when there is none).

    Image candidates are unioned in first-seen order; the first non-empty
    primary image is kept.
    """
    merged: dict[str, ExtractedPart] = {}
    for part in parts:
        key = part.identity_seed
        urls = list(part.image_urls)
        if part.image_url and part.image_url not in urls:
            urls.append(part.image_url)
        current = merged.get(key)
        if current is None:
            merged[key] = part.model_copy(update={"image_urls": list(dict.fromkeys(urls))})
            continue
        current.image_urls = list(dict.fromkeys([*current.image_urls, *urls]))
        if not current.image_url and part.image_url:
            current.image_url = part.image_url
    return list(merged.values())

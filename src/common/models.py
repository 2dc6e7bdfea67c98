"""Shared Pydantic data models for the parts harvester.

These models define the data contracts between the extractor, the
change tracker, the asset synchronizer and the caller of a crawl run.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


# === Enums ===

class HistoryEvent(str, Enum):
    """Transition recorded in the parts history log."""
    UPDATED = "updated"
    DELETED = "deleted"
    RESTORED = "restored"


class ImageStatus(str, Enum):
    """Outcome of synchronizing one remote image."""
    NEW = "new"
    UPDATED = "updated"
    UNCHANGED = "unchanged"

    @property
    def label(self) -> str:
        if self is ImageStatus.NEW:
            return "downloaded, new"
        if self is ImageStatus.UPDATED:
            return "downloaded, updated"
        return "skipped, unchanged"


class PartAction(str, Enum):
    """What the change tracker did with a part during a pass."""
    INSERTED = "inserted"
    UPDATED = "updated"
    RESTORED = "restored"
    UNCHANGED = "unchanged"
    DELETED = "deleted"
    FAILED = "failed"


# === Crawl sources ===

class CategorySource(BaseModel):
    """A listing page that links to model pages."""
    name: str
    url: str
    category: str = "motorcycles"


class ModelLink(BaseModel):
    """A link from a listing page to one model page."""
    text: str
    href: str
    category: str = "motorcycles"


# === Extraction ===

class ExtractedPart(BaseModel):
    """A candidate part record recovered from a model page."""
    name: str
    part_number: str = ""
    description: str = ""
    price: float = Field(gt=0)
    currency: str = "EUR"
    image_url: str | None = None
    image_urls: list[str] = []

    @property
    def identity_seed(self) -> str:
        return self.part_number or self.name


# === Progress reporting ===

class ImageOutcome(BaseModel):
    """Result of synchronizing one image of a part."""
    url: str
    path: str
    size: int | None = None
    status: ImageStatus
    backup_path: str | None = None


class PartOutcome(BaseModel):
    """Result of tracking one part during a pass."""
    part_id: str
    vehicle_id: str
    name: str
    part_number: str | None = None
    action: PartAction
    images: list[ImageOutcome] = []


class CrawlSummary(BaseModel):
    """Totals for one crawl run."""
    started_at: str
    pages_visited: int = 0
    pages_failed: int = 0
    parts_seen: int = 0
    parts_inserted: int = 0
    parts_updated: int = 0
    parts_restored: int = 0
    parts_deleted: int = 0
    parts_failed: int = 0
    images_downloaded: int = 0
    aborted: bool = False

    def record(self, outcome: PartOutcome) -> None:
        if outcome.action is PartAction.INSERTED:
            self.parts_inserted += 1
        elif outcome.action is PartAction.UPDATED:
            self.parts_updated += 1
        elif outcome.action is PartAction.RESTORED:
            self.parts_restored += 1
        elif outcome.action is PartAction.DELETED:
            self.parts_deleted += 1
        elif outcome.action is PartAction.FAILED:
            self.parts_failed += 1
        if outcome.action is not PartAction.DELETED:
            self.parts_seen += 1
        self.images_downloaded += sum(
            1 for img in outcome.images if img.status is not ImageStatus.UNCHANGED
        )

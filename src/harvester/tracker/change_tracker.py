"""Change detection, history archiving and tombstone reconciliation.

For every part extracted from a model page the tracker either inserts a
new row or compares it with the stored row. A detected transition
(field change, image content change, or reappearance of a tombstoned
part) archives the pre-change row into ``part_history`` before the live
row is updated. Parts of a vehicle that were not seen during the pass
become tombstones (``is_deleted = 1``), each with a ``deleted`` history
entry.

All writes for one part happen in a single transaction.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, Iterable

from src.common.models import (
    ExtractedPart,
    HistoryEvent,
    ImageOutcome,
    ImageStatus,
    PartAction,
    PartOutcome,
)
from ..assets.image_sync import AssetSynchronizer, unique_urls
from ..assets.paths import images_shorthand
from ..common.errors import PersistenceError
from ..common.run_context import RunContext
from ..database.models import Part, PartHistory, Vehicle
from ..database.repository import Repository
from .identity import history_id, match_part, part_id

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[PartOutcome], None]


def diff_fields(existing: Part, record: ExtractedPart) -> dict[str, tuple]:
    """Field-level differences between a stored part and a fresh record."""
    changes: dict[str, tuple] = {}
    if (existing.price or 0) != (record.price or 0) or (existing.currency or "EUR") != record.currency:
        changes["price"] = ((existing.price, existing.currency), (record.price, record.currency))
    if (existing.name or "") != (record.name or ""):
        changes["name"] = (existing.name, record.name)
    if (existing.description or "") != (record.description or ""):
        changes["description"] = (existing.description, record.description)
    if (existing.image_url or "") != (record.image_url or ""):
        changes["image"] = (existing.image_url, record.image_url)
    return changes


def _history_image_path(existing: Part, outcomes: dict[str, ImageOutcome]) -> str | None:
    """Path that shows what the primary image looked like before this pass."""
    for outcome in outcomes.values():
        if outcome.status is not ImageStatus.UPDATED or not outcome.backup_path:
            continue
        if (existing.image_url and outcome.url == existing.image_url) or (
            existing.image_path and outcome.path == existing.image_path
        ):
            return outcome.backup_path
    return existing.image_path


class ChangeTracker:
    """Applies one pass of extracted parts to storage.

    Args:
        repo: Storage for parts, history and image assets.
        assets: Image synchronizer for each part's images.
        download_images: When False, asset rows are recorded without
            downloading anything.
        progress: Optional callable receiving each PartOutcome.
    """

    def __init__(
        self,
        repo: Repository,
        assets: AssetSynchronizer,
        download_images: bool = True,
        progress: ProgressCallback | None = None,
    ) -> None:
        self.repo = repo
        self.assets = assets
        self.download_images = download_images
        self.progress = progress

    def track_parts(
        self,
        vehicle: Vehicle,
        records: Iterable[ExtractedPart],
        page_url: str,
        context: RunContext,
    ) -> tuple[list[str], list[PartOutcome]]:
        """Track every record of one page; returns (seen part ids, outcomes).

        A seen id is the id of the row the record resolved to, which is not
        always the id its current seed would derive (a row matched by name
        may have been created under a part number).
        """
        seen_ids: list[str] = []
        outcomes: list[PartOutcome] = []
        for record in records:
            outcome = self.track_part(vehicle, record, page_url, context)
            seen_ids.append(outcome.part_id)
            outcomes.append(outcome)
        return seen_ids, outcomes

    def track_part(
        self,
        vehicle: Vehicle,
        record: ExtractedPart,
        page_url: str,
        context: RunContext,
    ) -> PartOutcome:
        existing = match_part(self.repo, vehicle.id, record)
        urls = unique_urls(record.image_urls or [record.image_url])
        images = self.assets.download_all(urls, context) if self.download_images else {}

        if existing is None:
            outcome = self._insert(vehicle, record, page_url, urls, images, context)
        else:
            outcome = self._update(existing, record, page_url, urls, images, context)
        self._report(outcome)
        return outcome

    def _insert(
        self,
        vehicle: Vehicle,
        record: ExtractedPart,
        page_url: str,
        urls: list[str],
        images: dict[str, ImageOutcome],
        context: RunContext,
    ) -> PartOutcome:
        ts = context.scrape_timestamp
        part = Part(
            id=part_id(vehicle.id, record.identity_seed),
            vehicle_id=vehicle.id,
            name=record.name,
            url=page_url,
            part_number=record.part_number or None,
            description=record.description,
            price=record.price,
            currency=record.currency,
            image_url=record.image_url,
            image_path=None,
            scraped_at=ts,
            last_seen=ts,
        )
        action = PartAction.INSERTED
        try:
            with self.repo.transaction():
                self.repo.insert_part(part)
                self.assets.record_assets(self.repo, part.id, urls, images)
                self.repo.mark_seen(part.id, ts)
        except PersistenceError as exc:
            logger.warning("Could not insert part %s (%s): %s", part.id, part.name, exc)
            action = PartAction.FAILED
        return self._outcome(part, action, urls, images)

    def _update(
        self,
        existing: Part,
        record: ExtractedPart,
        page_url: str,
        urls: list[str],
        images: dict[str, ImageOutcome],
        context: RunContext,
    ) -> PartOutcome:
        ts = context.scrape_timestamp
        changes = diff_fields(existing, record)
        image_content_changed = any(o.status is ImageStatus.UPDATED for o in images.values())
        was_deleted = bool(existing.is_deleted)
        changed = bool(changes) or image_content_changed or was_deleted

        if was_deleted:
            action = PartAction.RESTORED
        elif changed:
            action = PartAction.UPDATED
        else:
            action = PartAction.UNCHANGED

        try:
            with self.repo.transaction():
                if changed:
                    event = HistoryEvent.RESTORED if was_deleted else HistoryEvent.UPDATED
                    self.repo.insert_history(
                        PartHistory.snapshot(
                            history_id(existing.id),
                            existing,
                            event.value,
                            ts,
                            image_path=_history_image_path(existing, images),
                        )
                    )
                    same_image = (existing.image_url or "") == (record.image_url or "")
                    self.repo.update_part_values(
                        replace(
                            existing,
                            name=record.name,
                            description=record.description,
                            price=record.price,
                            currency=record.currency,
                            image_url=record.image_url,
                            image_path=existing.image_path if same_image else None,
                            url=page_url,
                            scraped_at=ts,
                        )
                    )
                    if changes:
                        logger.debug("Part %s changed: %s", existing.id, ", ".join(changes))
                self.assets.record_assets(self.repo, existing.id, urls, images)
                self.repo.mark_seen(existing.id, ts)
        except PersistenceError as exc:
            logger.error("Error updating existing part %s (%s): %s", existing.id, existing.name, exc)
            action = PartAction.FAILED

        return self._outcome(existing, action, urls, images, name=record.name)

    def reconcile(self, vehicle: Vehicle, seen_ids: Iterable[str], context: RunContext) -> list[PartOutcome]:
        """Tombstone live parts of ``vehicle`` that were not seen in this pass.

        Already-deleted parts are left untouched, so running this twice
        records nothing new.
        """
        ts = context.scrape_timestamp
        rows = self.repo.list_unseen_active_parts(vehicle.id, seen_ids)
        if not rows:
            return []

        try:
            with self.repo.transaction():
                for row in rows:
                    self.repo.insert_history(
                        PartHistory.snapshot(
                            history_id(row.id, HistoryEvent.DELETED.value),
                            row,
                            HistoryEvent.DELETED.value,
                            ts,
                        )
                    )
                    self.repo.mark_deleted(row.id, ts)
        except PersistenceError as exc:
            logger.error("Could not mark unavailable parts for %s: %s", vehicle.label, exc)
            return []

        logger.info("Marking %d unavailable part(s) for %s", len(rows), vehicle.label)
        outcomes = []
        for row in rows:
            logger.info("  - %s | %s", row.part_number or row.id, row.name or "")
            refs = [row.image_path, images_shorthand(row.image_url)]
            for asset in self.repo.list_image_assets(row.id):
                refs.extend([asset.image_path, images_shorthand(asset.image_url)])
            for ref in dict.fromkeys(r for r in refs if r):
                logger.info("    - %s", ref)
            outcome = PartOutcome(
                part_id=row.id,
                vehicle_id=vehicle.id,
                name=row.name,
                part_number=row.part_number,
                action=PartAction.DELETED,
            )
            self._emit(outcome)
            outcomes.append(outcome)
        return outcomes

    def _outcome(
        self,
        part: Part,
        action: PartAction,
        urls: list[str],
        images: dict[str, ImageOutcome],
        name: str | None = None,
    ) -> PartOutcome:
        return PartOutcome(
            part_id=part.id,
            vehicle_id=part.vehicle_id,
            name=name or part.name,
            part_number=part.part_number,
            action=action,
            images=[images[u] for u in urls if u in images],
        )

    def _report(self, outcome: PartOutcome) -> None:
        logger.info("  - %s | %s", outcome.part_number or "NO_PART_NUMBER", outcome.name)
        for img in outcome.images:
            logger.info("    - %s (%d bytes) - %s", img.path, img.size or 0, img.status.label)
        self._emit(outcome)

    def _emit(self, outcome: PartOutcome) -> None:
        if self.progress is not None:
            self.progress(outcome)

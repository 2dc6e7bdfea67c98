"""Content-derived identities for vehicles, parts and history entries."""

from __future__ import annotations

import hashlib
import uuid

from src.common.models import ExtractedPart, ModelLink
from ..common.run_context import RunContext
from ..database.models import Part, Vehicle
from ..database.repository import Repository
from ..extractor.links import extract_brand_model, normalize_model_url


def generate_id(text: str) -> str:
    return hashlib.md5(text.encode("utf-8")).hexdigest()


def vehicle_id(brand: str, model: str) -> str:
    return generate_id(f"{brand}-{model}")


def part_id(vehicle_id: str, part_number_or_name: str) -> str:
    return generate_id(f"{vehicle_id}-{part_number_or_name}")


def history_id(part_id: str, tag: str = "") -> str:
    """Unique id for one history row; never derived from content alone."""
    seed = f"{part_id}-{tag}-{uuid.uuid4()}" if tag else f"{part_id}-{uuid.uuid4()}"
    return generate_id(seed)


def match_part(repo: Repository, vehicle_id: str, record: ExtractedPart) -> Part | None:
    """Stored part for ``record``: by part number when present, else by name."""
    if record.part_number:
        return repo.find_part(vehicle_id, part_number=record.part_number)
    return repo.find_part(vehicle_id, name=record.name)


def resolve_vehicle(repo: Repository, link: ModelLink, context: RunContext) -> Vehicle:
    """Find or create the vehicle for a model page and return it.

    Matching order: canonical source URL first (stable when brand parsing
    improves), then the derived id (rows written before URLs were
    canonical), else a new vehicle.
    """
    url = normalize_model_url(link.href)
    brand, model = extract_brand_model(link.text)
    derived_id = vehicle_id(brand, model)

    with repo.transaction():
        existing = repo.find_vehicle_by_url(url)
        if existing is not None:
            if existing.brand != brand or existing.model != model:
                existing.brand = brand
                existing.model = model
                existing.category = link.category
                existing.last_updated = context.scrape_timestamp
                repo.update_vehicle(existing)
            return existing

        existing = repo.find_vehicle_by_id(derived_id)
        if existing is not None:
            existing.brand = brand
            existing.model = model
            existing.category = link.category
            existing.url = url
            existing.last_updated = context.scrape_timestamp
            repo.update_vehicle(existing)
            return existing

        vehicle = Vehicle(
            id=derived_id,
            brand=brand,
            model=model,
            category=link.category,
            url=url,
            last_updated=context.scrape_timestamp,
        )
        repo.insert_vehicle(vehicle)
        return vehicle

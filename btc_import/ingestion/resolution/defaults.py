"""
Fallback policy for entity resolution, loaded from YAML.

Pydantic models mirroring ``configs/resolution.yaml`` section by section.
Unknown keys are rejected so a typo never silently falls back to a
built-in value.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class _Section(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class DefaultLocation(_Section):
    """Mastered location used when a venue carries none of its own."""

    mastered_city_id: str = "64f26a9f75bfc0db12ed7a1e"
    mastered_city_name: str = "Boston"
    mastered_division_id: str = "64f26a9f75bfc0db12ed7a15"
    mastered_division_name: str = "Massachusetts"
    mastered_region_id: str = "64f26a9f75bfc0db12ed7a12"
    mastered_region_name: str = "New England"
    coordinates: tuple[float, float] = Field(
        default=(-71.0589, 42.3601),
        description="[longitude, latitude]",
    )

    @property
    def longitude(self) -> float:
        return self.coordinates[0]

    @property
    def latitude(self) -> float:
        return self.coordinates[1]

    def point(self) -> dict[str, Any]:
        return {"type": "Point", "coordinates": list(self.coordinates)}


class VenueDefaults(_Section):
    not_found_name: str = "NotFound"
    placeholder_address: str = "Unknown Address"
    placeholder_zipcode: str = "00000"
    mock_id_prefix: str = "mock-venue-"
    max_city_distance_km: float = Field(default=5.0, gt=0)


class OrganizerDefaults(_Section):
    default_short_name: str = "DEFAULT"
    default_display_name: str = "Un-Identified Organizer"
    mock_names: frozenset[str] = frozenset({"John Doe", "Jane Smith", "Tango Community"})


class CategoryDefaults(_Section):
    unknown_name: str = "Unknown"
    fallback_name: str = "Class"
    essential: tuple[str, ...] = ("Class", "Milonga", "Practica")
    bulk_load_limit: int = Field(default=500, ge=1)
    broad_search_limit: int = Field(default=100, ge=1)


class ResolutionDefaults(_Section):
    """Everything the resolver falls back to when lookups come up empty."""

    location: DefaultLocation = Field(default_factory=DefaultLocation)
    venues: VenueDefaults = Field(default_factory=VenueDefaults)
    organizers: OrganizerDefaults = Field(default_factory=OrganizerDefaults)
    categories: CategoryDefaults = Field(default_factory=CategoryDefaults)


def load_resolution_defaults(path: str | Path | None = None) -> ResolutionDefaults:
    """
    Load resolution defaults from a YAML file.

    Missing keys keep their built-in values; a missing path yields the
    built-in defaults.

    Raises:
        pydantic.ValidationError: when the file does not match the schema
    """
    if path is None:
        return ResolutionDefaults()

    path = Path(path)
    if not path.exists():
        logger.warning(f"Resolution config not found at {path}, using built-in defaults")
        return ResolutionDefaults()

    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    return ResolutionDefaults.model_validate(raw)

# btc_import/schemas/event.py
"""
Wire schemas for the BTC → TangoTiempo import.

SourceEvent models a record from the WordPress "The Events Calendar" REST API.
It is deliberately loose: nested venue/organizer/category objects are kept as
plain dicts because the source sends them in several shapes (an organizer may
be an object or an array, a missing venue arrives as ``[]``).

TargetEvent models the payload posted to ``POST /events/post``. It is
serialized with the camelCase names the target API expects.
"""

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# ============================================================================
# SOURCE
# ============================================================================


class SourceEvent(BaseModel):
    """Event as returned by ``GET {source}/events``."""

    model_config = ConfigDict(extra="allow", frozen=True)

    id: Union[int, str]
    title: str = ""
    description: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    utc_start_date: Optional[str] = None
    utc_end_date: Optional[str] = None
    timezone: Optional[str] = None
    all_day: bool = False
    cost: Optional[Any] = None
    image: Optional[Any] = None
    venue: Optional[Union[Dict[str, Any], List[Any]]] = None
    organizer: Optional[Union[Dict[str, Any], List[Any]]] = None
    categories: List[Dict[str, Any]] = Field(default_factory=list)

    @field_validator("title", mode="before")
    @classmethod
    def _title_text(cls, value):
        return "" if value is None else value

    @field_validator("categories", mode="before")
    @classmethod
    def _categories_list(cls, value):
        return value or []

    @property
    def venue_payload(self) -> Optional[Dict[str, Any]]:
        """Venue object, or None when the source sent nothing usable."""
        if isinstance(self.venue, dict) and self.venue:
            return self.venue
        return None

    @property
    def organizer_payload(self) -> Optional[Dict[str, Any]]:
        """Canonical organizer: the object itself, or the first array element."""
        if isinstance(self.organizer, list):
            first = self.organizer[0] if self.organizer else None
            return first if isinstance(first, dict) else None
        if isinstance(self.organizer, dict) and self.organizer:
            return self.organizer
        return None

    @property
    def venue_name(self) -> str:
        venue = self.venue_payload
        return (venue or {}).get("venue") or "unknown"

    @property
    def organizer_name(self) -> str:
        organizer = self.organizer_payload
        return (organizer or {}).get("organizer") or "unknown"

    @property
    def category_names(self) -> List[str]:
        return [c.get("name", "") for c in self.categories if isinstance(c, dict)]

    @property
    def image_url(self) -> Optional[str]:
        if isinstance(self.image, dict):
            return self.image.get("url") or None
        return None

    def source_summary(self) -> Dict[str, str]:
        """Names used in failure reports."""
        return {
            "venue": self.venue_name,
            "organizer": self.organizer_name,
            "categories": ", ".join(self.category_names) if self.categories else "unknown",
        }


# ============================================================================
# TARGET
# ============================================================================


class GeoPoint(BaseModel):
    """GeoJSON Point, coordinates as [longitude, latitude]."""

    type: Literal["Point"] = "Point"
    coordinates: List[float]

    @field_validator("coordinates")
    @classmethod
    def _two_coordinates(cls, value: List[float]) -> List[float]:
        if len(value) != 2:
            raise ValueError("GeoJSON Point needs exactly [longitude, latitude]")
        return value


class GeographyInfo(BaseModel):
    """Geolocation and mastered location hierarchy of a resolved venue."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    venue_geolocation: GeoPoint
    mastered_city_id: Optional[str] = None
    mastered_city_name: Optional[str] = None
    mastered_division_id: Optional[str] = None
    mastered_division_name: Optional[str] = None
    mastered_region_id: Optional[str] = None
    mastered_region_name: Optional[str] = None
    mastered_city_geolocation: GeoPoint
    is_valid_venue_geolocation: bool = False


class TargetEvent(BaseModel):
    """Event payload written to the target API."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    app_id: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    all_day: bool = False
    cost: Optional[Any] = None

    # Entity references
    venue_id: Optional[str] = Field(None, alias="venueID")
    owner_organizer_id: Optional[str] = Field(None, alias="ownerOrganizerID")
    owner_organizer_name: Optional[str] = None
    category_first_id: Optional[str] = None
    category_first: Optional[str] = None
    category_second_id: Optional[str] = None
    category_second: Optional[str] = None

    # Geography
    venue_geolocation: Optional[GeoPoint] = None
    mastered_city_id: Optional[str] = None
    mastered_city_name: Optional[str] = None
    mastered_city_geolocation: Optional[GeoPoint] = None
    mastered_division_id: Optional[str] = None
    mastered_division_name: Optional[str] = None
    mastered_region_id: Optional[str] = None
    mastered_region_name: Optional[str] = None

    # Import provenance
    is_discovered: bool = True
    is_owner_managed: bool = False
    is_active: bool = True
    is_featured: bool = False
    is_canceled: bool = False
    discovered_first_date: Optional[str] = None
    discovered_last_date: Optional[str] = None
    discovered_comments: Optional[str] = None
    expires_at: Optional[str] = None
    event_image: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        """camelCase request body; unset optional fields are omitted."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")

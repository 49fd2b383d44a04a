"""
Entity resolution.

Maps loosely-identified source references (venue, organizer and category
names) to canonical target ids. Every resolver consults the per-run
ResolutionCache first, then walks a fixed chain of target API lookups and
caches the first accepted result. Resolvers never raise: an exhausted chain
yields an UNMATCHED resolution, an unexpected failure an ERROR resolution.
"""

import logging
import random
import string
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from btc_import.ingestion.adapters.target_api import TargetAPIClient
from btc_import.ingestion.errors import ErrorCategory, ErrorLog, ErrorSeverity, ImportStage
from btc_import.ingestion.resilience import RetryingExecutor
from btc_import.schemas.event import GeographyInfo, GeoPoint, SourceEvent

from .cache import ResolutionCache
from .categories import is_ignored_category, map_to_canonical_category, source_names_for
from .defaults import ResolutionDefaults

logger = logging.getLogger(__name__)


# ============================================================================
# RESULT TYPES
# ============================================================================


class ResolutionStatus(str, Enum):
    RESOLVED = "resolved"
    UNMATCHED = "unmatched"
    IGNORED = "ignored"
    ERROR = "error"


@dataclass(frozen=True)
class Resolution:
    """
    Outcome of one resolve call.

    ``value`` is the venue id (str) for venues and ``{"id", "name"}`` for
    organizers and categories. ``method`` names the tier that matched.
    """

    status: ResolutionStatus
    value: Any = None
    method: Optional[str] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == ResolutionStatus.RESOLVED

    @classmethod
    def resolved(cls, value: Any, method: str) -> "Resolution":
        return cls(ResolutionStatus.RESOLVED, value=value, method=method)

    @classmethod
    def unmatched(cls, reason: str) -> "Resolution":
        return cls(ResolutionStatus.UNMATCHED, reason=reason)

    @classmethod
    def ignored(cls, reason: str) -> "Resolution":
        return cls(ResolutionStatus.IGNORED, reason=reason)

    @classmethod
    def error(cls, reason: str) -> "Resolution":
        return cls(ResolutionStatus.ERROR, reason=reason)


@dataclass
class ResolvedEntities:
    """
    Per-event resolution bag.

    ``entities`` uses the TargetEvent field names (venue_id, organizer_id,
    organizer_name, category_first_id, ...).
    """

    resolved: bool = True
    entities: Dict[str, Any] = field(default_factory=dict)
    geography: Optional[GeographyInfo] = None
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resolved": self.resolved,
            "entities": dict(self.entities),
            "geography": (
                self.geography.model_dump(by_alias=True, mode="json") if self.geography else None
            ),
            "errors": list(self.errors),
        }


def _mock_suffix(length: int = 7) -> str:
    return "".join(random.choices(string.ascii_lowercase + string.digits, k=length))


def _well_formed_point(value: Any) -> bool:
    return (
        isinstance(value, dict)
        and value.get("type") == "Point"
        and isinstance(value.get("coordinates"), list)
        and len(value["coordinates"]) == 2
    )


def _ref_id(ref: Any, default: str) -> str:
    """Id of a possibly-populated reference (``{"_id": ...}`` or a bare id)."""
    if isinstance(ref, dict):
        return ref.get("_id") or default
    return ref or default


def _ref_name(ref: Any, key: str) -> Optional[str]:
    if isinstance(ref, dict):
        return ref.get(key)
    return None


# ============================================================================
# RESOLVER
# ============================================================================


class EntityResolver:
    """
    Resolve source entities against the target API.

    Args:
        client: Target API client
        executor: Retrying executor wrapping every remote call
        error_log: Structured error log
        cache: Per-run cache, owned by the caller
        defaults: Fallback policy
    """

    def __init__(
        self,
        client: TargetAPIClient,
        executor: RetryingExecutor,
        error_log: ErrorLog,
        cache: Optional[ResolutionCache] = None,
        defaults: Optional[ResolutionDefaults] = None,
    ):
        self.client = client
        self.executor = executor
        self.error_log = error_log
        self.cache = cache if cache is not None else ResolutionCache()
        self.defaults = defaults or ResolutionDefaults()

    @property
    def app_id(self) -> str:
        return self.client.app_id

    async def _call(self, call: Callable[[], Awaitable[Any]], context: Dict[str, Any]) -> Any:
        return await self.executor.execute(call, ImportStage.ENTITY_RESOLUTION, context)

    def _log_resolution_error(self, message: str, context: Dict[str, Any], error: Exception) -> None:
        self.error_log.create_and_log(
            message,
            ErrorCategory.ENTITY_RESOLUTION,
            ErrorSeverity.ERROR,
            ImportStage.ENTITY_RESOLUTION,
            context,
            error,
        )

    # ------------------------------------------------------------------
    # Venues
    # ------------------------------------------------------------------

    async def resolve_venue(self, source_venue: Optional[Dict[str, Any]]) -> Resolution:
        """
        Resolve a source venue to a target venue id.

        Tiers: exact name, the NotFound sentinel venue, creation with the
        default location, unmatched.
        """
        name = source_venue.get("venue") if isinstance(source_venue, dict) else None
        if not name:
            logger.warning("Empty venue object received")
            return Resolution.unmatched("Empty venue object received")

        if name in self.cache.venues:
            return self.cache.venues[name]
        if name in self.cache.unmatched_venues:
            return Resolution.unmatched(f"Venue previously unmatched: {name}")

        context = {"venueName": name}
        try:
            return await self._lookup_venue(name, context)
        except Exception as error:
            self._log_resolution_error(f'Error resolving venue "{name}"', context, error)
            return Resolution.error(f"Venue lookup failed: {error}")

    async def _lookup_venue(self, name: str, context: Dict[str, Any]) -> Resolution:
        venues = await self._call(lambda: self.client.find_venues(name), context)
        if venues:
            return self._accept_venue(name, venues[0]["_id"], "name")

        # NotFound sentinel
        sentinel = self.defaults.venues.not_found_name
        try:
            sentinels = await self._call(lambda: self.client.find_venues(sentinel), context)
            if sentinels:
                return self._accept_venue(name, sentinels[0]["_id"], "not_found_sentinel")
        except Exception as error:
            logger.warning(f"Error using {sentinel} venue fallback: {error}")

        # Create with the default location
        try:
            created = await self._call(
                lambda: self.client.create_venue(self._default_venue_payload(name)), context
            )
            if isinstance(created, dict) and created.get("_id"):
                logger.info(f'Created venue with default location for "{name}" -> {created["_id"]}')
                return self._accept_venue(name, created["_id"], "created_with_defaults")
        except Exception as error:
            logger.warning(f'Error creating fallback venue for "{name}": {error}')

        logger.warning(f'Unmatched venue: "{name}"')
        self.cache.unmatched_venues.add(name)
        return Resolution.unmatched(f"Venue not found: {name}")

    def _accept_venue(self, name: str, venue_id: str, method: str) -> Resolution:
        resolution = Resolution.resolved(venue_id, method)
        self.cache.venues[name] = resolution
        logger.debug(f'Venue matched by {method}: "{name}" -> {venue_id}')
        return resolution

    def _default_venue_payload(self, name: str) -> Dict[str, Any]:
        location = self.defaults.location
        return {
            "name": name,
            "address1": self.defaults.venues.placeholder_address,
            "city": location.mastered_city_name,
            "state": location.mastered_division_name,
            "zipcode": self.defaults.venues.placeholder_zipcode,
            "latitude": location.latitude,
            "longitude": location.longitude,
            "masteredCityId": location.mastered_city_id,
            "masteredDivisionId": location.mastered_division_id,
            "masteredRegionId": location.mastered_region_id,
            "appId": self.app_id,
            "isValidVenueGeolocation": True,
            "venueFromBTC": True,
        }

    # ------------------------------------------------------------------
    # Organizers
    # ------------------------------------------------------------------

    async def resolve_organizer(self, source_organizer: Any) -> Resolution:
        """
        Resolve a source organizer to ``{"id", "name"}``.

        Accepts an object or an array whose first element is canonical.
        Tiers: btcNiceName, name, the default organizer, the mock allow-list,
        unmatched.
        """
        if isinstance(source_organizer, list):
            source_organizer = source_organizer[0] if source_organizer else None
        name = source_organizer.get("organizer") if isinstance(source_organizer, dict) else None
        if not name:
            logger.warning("Empty organizer object received")
            return Resolution.unmatched("Empty organizer object received")

        if name in self.cache.organizers:
            return self.cache.organizers[name]
        if name in self.cache.unmatched_organizers:
            return Resolution.unmatched(f"Organizer previously unmatched: {name}")

        context = {"organizerName": name}
        try:
            return await self._lookup_organizer(name, context)
        except Exception as error:
            self._log_resolution_error(f'Error resolving organizer "{name}"', context, error)
            return Resolution.error(f"Organizer lookup failed: {error}")

    async def _lookup_organizer(self, name: str, context: Dict[str, Any]) -> Resolution:
        organizers = await self._call(
            lambda: self.client.find_organizers(btcNiceName=name), context
        )
        if organizers:
            return self._accept_organizer(name, organizers[0], "btc_nice_name", name)

        organizers = await self._call(lambda: self.client.find_organizers(name=name), context)
        if organizers:
            return self._accept_organizer(name, organizers[0], "name", name)

        short_name = self.defaults.organizers.default_short_name
        try:
            organizers = await self._call(
                lambda: self.client.find_organizers(shortName=short_name), context
            )
            if organizers:
                return self._accept_organizer(
                    name,
                    organizers[0],
                    "default_organizer",
                    self.defaults.organizers.default_display_name,
                )
        except Exception as error:
            logger.warning(f"Error using default organizer fallback: {error}")

        if name in self.defaults.organizers.mock_names:
            resolution = Resolution.resolved(
                {"id": f"mock-organizer-{_mock_suffix()}", "name": name}, "mock"
            )
            self.cache.organizers[name] = resolution
            logger.info(f'Organizer mock-matched: "{name}" -> {resolution.value["id"]}')
            return resolution

        logger.warning(f'Unmatched organizer: "{name}"')
        self.cache.unmatched_organizers.add(name)
        return Resolution.unmatched(f"Organizer not found: {name}")

    def _accept_organizer(
        self, name: str, organizer: Dict[str, Any], method: str, fallback_name: str
    ) -> Resolution:
        value = {"id": organizer["_id"], "name": organizer.get("fullName") or fallback_name}
        resolution = Resolution.resolved(value, method)
        self.cache.organizers[name] = resolution
        logger.debug(f'Organizer matched by {method}: "{name}" -> {value["id"]}')
        return resolution

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    async def load_all_categories(self) -> None:
        """Bulk-load canonical categories once per run and build the reverse map."""
        if self.cache.categories_loaded:
            return
        self.cache.categories_loaded = True

        limit = self.defaults.categories.bulk_load_limit
        try:
            categories = await self._call(
                lambda: self.client.find_categories(limit=limit), {"limit": limit}
            )
        except Exception as error:
            logger.error(f"Error loading categories: {error}")
            return

        for category in categories or []:
            if not isinstance(category, dict):
                continue
            canonical = category.get("categoryName")
            if not canonical or not category.get("_id"):
                continue
            resolution = Resolution.resolved(
                {"id": category["_id"], "name": canonical}, "bulk_load"
            )
            for source_name in source_names_for(canonical):
                self.cache.categories.setdefault(source_name, resolution)

        logger.info(
            f"Loaded {len(categories)} categories, cached {len(self.cache.categories)} mappings"
        )

    async def resolve_category(self, source_category: Optional[Dict[str, Any]]) -> Resolution:
        """
        Resolve a source category to ``{"id", "name"}``.

        Ignored names (Canceled, Other) yield IGNORED. Unmapped names fall back
        to the fallback category. Mapped names go through the bulk-loaded
        reverse map, a per-name query, an essential-category search, then the
        Unknown and Class categories.
        """
        name = source_category.get("name") if isinstance(source_category, dict) else None
        if not name:
            logger.warning("Empty category object received")
            return Resolution.unmatched("Empty category object received")

        if name in self.cache.categories:
            return self.cache.categories[name]
        if is_ignored_category(name):
            return Resolution.ignored(f"Category ignored: {name}")
        if name in self.cache.unmatched_categories:
            return Resolution.unmatched(f"Category previously unmatched: {name}")

        context: Dict[str, Any] = {"categoryName": name}
        try:
            return await self._lookup_category(name, context)
        except Exception as error:
            self._log_resolution_error(f'Error resolving category "{name}"', context, error)
            return Resolution.error(f"Category lookup failed: {error}")

    async def _lookup_category(self, name: str, context: Dict[str, Any]) -> Resolution:
        await self.load_all_categories()
        if name in self.cache.categories:
            return self.cache.categories[name]

        canonical = map_to_canonical_category(name)
        if canonical is None:
            return self._fallback_category(name)

        context["mappedName"] = canonical
        matches = await self._call(
            lambda: self.client.find_categories(categoryName=canonical), context
        )
        if matches:
            return self._accept_category(name, matches[0]["_id"], canonical, "category_name")

        if canonical in self.defaults.categories.essential:
            resolution = await self._essential_category(name, canonical, context)
            if resolution:
                return resolution

        categories = self.defaults.categories
        for fallback in (categories.unknown_name, categories.fallback_name):
            try:
                matches = await self._call(
                    lambda: self.client.find_categories(categoryName=fallback), context
                )
            except Exception as error:
                logger.warning(f'Error using "{fallback}" category fallback: {error}')
                continue
            if matches:
                return self._accept_category(
                    name, matches[0]["_id"], fallback, f"{fallback.lower()}_fallback"
                )

        logger.warning(f'No category match found for "{name}"')
        self.cache.unmatched_categories.add(name)
        return Resolution.unmatched(f"Category not found: {name}")

    def _fallback_category(self, name: str) -> Resolution:
        fallback = self.cache.categories.get(self.defaults.categories.fallback_name)
        if fallback is None:
            logger.warning(f'Category unmapped and no fallback available: "{name}"')
            self.cache.unmatched_categories.add(name)
            return Resolution.unmatched(f"Category unmapped: {name}")

        logger.info(
            f'Defaulting category "{name}" to "{self.defaults.categories.fallback_name}"'
        )
        resolution = Resolution.resolved(fallback.value, "unmapped_fallback")
        self.cache.categories[name] = resolution
        return resolution

    async def _essential_category(
        self, name: str, canonical: str, context: Dict[str, Any]
    ) -> Optional[Resolution]:
        limit = self.defaults.categories.broad_search_limit
        try:
            categories = await self._call(
                lambda: self.client.find_categories(limit=limit), context
            )
        except Exception as error:
            logger.warning(f'Error searching for essential category "{canonical}": {error}')
            return None

        by_name = {c.get("categoryName"): c for c in categories or [] if isinstance(c, dict)}
        if canonical in by_name:
            return self._accept_category(name, by_name[canonical]["_id"], canonical, "essential_search")

        fallback = self.defaults.categories.fallback_name
        if canonical != fallback and fallback in by_name:
            return self._accept_category(name, by_name[fallback]["_id"], fallback, "essential_fallback")
        return None

    def _accept_category(self, name: str, category_id: str, canonical: str, method: str) -> Resolution:
        resolution = Resolution.resolved({"id": category_id, "name": canonical}, method)
        self.cache.categories[name] = resolution
        logger.debug(f'Category matched by {method}: "{name}" -> {category_id} ({canonical})')
        return resolution

    # ------------------------------------------------------------------
    # Geography
    # ------------------------------------------------------------------

    def default_geography(self) -> GeographyInfo:
        location = self.defaults.location
        return GeographyInfo(
            venue_geolocation=GeoPoint(coordinates=list(location.coordinates)),
            mastered_city_id=location.mastered_city_id,
            mastered_city_name=location.mastered_city_name,
            mastered_division_id=location.mastered_division_id,
            mastered_division_name=location.mastered_division_name,
            mastered_region_id=location.mastered_region_id,
            mastered_region_name=location.mastered_region_name,
            mastered_city_geolocation=GeoPoint(coordinates=list(location.coordinates)),
            is_valid_venue_geolocation=True,
        )

    async def get_venue_geography(self, venue_id: Optional[str]) -> Optional[GeographyInfo]:
        """
        Derive geolocation and mastered hierarchy for a resolved venue.

        Back-fills the venue's mastered city and validity flag on the target
        when they were computed here; those updates are best-effort.

        Returns:
            GeographyInfo, or None when the venue cannot be read
        """
        if not venue_id:
            return None
        if venue_id.startswith(self.defaults.venues.mock_id_prefix):
            return self.default_geography()

        context = {"venueId": venue_id}
        try:
            venue = await self._call(lambda: self.client.get_venue(venue_id), context)
            if not venue:
                return None
            return await self._derive_geography(venue_id, venue, context)
        except Exception as error:
            self._log_resolution_error(
                f"Error getting venue geography for {venue_id}", context, error
            )
            return None

    async def _derive_geography(
        self, venue_id: str, venue: Dict[str, Any], context: Dict[str, Any]
    ) -> GeographyInfo:
        location = self.defaults.location
        city = venue.get("masteredCityId")
        division = venue.get("masteredDivisionId")
        region = venue.get("masteredRegionId")
        latitude = venue.get("latitude")
        longitude = venue.get("longitude")

        # Venue point
        geolocation = venue.get("geolocation")
        if _well_formed_point(geolocation):
            venue_point = GeoPoint(coordinates=geolocation["coordinates"])
        elif isinstance(geolocation, list) and len(geolocation) == 2:
            venue_point = GeoPoint(coordinates=geolocation)
        else:
            logger.warning(f"No usable geolocation for venue {venue_id}, using default coordinates")
            venue_point = GeoPoint(coordinates=list(location.coordinates))

        # City point
        city_geolocation = city.get("geolocation") if isinstance(city, dict) else None
        if (
            isinstance(city_geolocation, dict)
            and isinstance(city_geolocation.get("coordinates"), list)
            and len(city_geolocation["coordinates"]) == 2
        ):
            city_point = GeoPoint(coordinates=city_geolocation["coordinates"])
        elif latitude and longitude:
            city_point = GeoPoint(coordinates=[float(longitude), float(latitude)])
        else:
            city_point = GeoPoint(coordinates=list(location.coordinates))
            if not city:
                await self._update_venue(
                    venue_id,
                    {**venue, "masteredCityId": location.mastered_city_id, "appId": self.app_id},
                    context,
                    "default masteredCityId",
                )

        # Validity
        is_valid = False
        if "isValidVenueGeolocation" in venue:
            is_valid = bool(venue["isValidVenueGeolocation"])
        elif latitude and longitude:
            is_valid = await self._validate_against_nearest_city(
                venue_id, venue, longitude, latitude, context
            )

        needs_defaults = not city and not division
        return GeographyInfo(
            venue_geolocation=venue_point,
            mastered_city_id=_ref_id(city, location.mastered_city_id),
            mastered_city_name=(
                _ref_name(city, "cityName") or venue.get("city") or location.mastered_city_name
            ),
            mastered_division_id=_ref_id(division, location.mastered_division_id),
            mastered_division_name=(
                _ref_name(division, "divisionName")
                or venue.get("state")
                or location.mastered_division_name
            ),
            mastered_region_id=_ref_id(region, location.mastered_region_id),
            mastered_region_name=(
                _ref_name(region, "regionName")
                or (location.mastered_region_name if needs_defaults else "Unknown Region")
            ),
            mastered_city_geolocation=city_point,
            is_valid_venue_geolocation=is_valid or needs_defaults,
        )

    async def _validate_against_nearest_city(
        self,
        venue_id: str,
        venue: Dict[str, Any],
        longitude: Any,
        latitude: Any,
        context: Dict[str, Any],
    ) -> bool:
        try:
            cities = await self._call(
                lambda: self.client.nearest_city(longitude, latitude, limit=1), context
            )
        except Exception as error:
            logger.warning(f"Error validating venue {venue_id} location: {error}")
            return False

        if not cities:
            return False
        distance = cities[0].get("distanceInKm")
        if distance is None or distance > self.defaults.venues.max_city_distance_km:
            return False

        await self._update_venue(
            venue_id,
            {**venue, "isValidVenueGeolocation": True, "appId": self.app_id},
            context,
            "valid geolocation flag",
        )
        return True

    async def _update_venue(
        self, venue_id: str, payload: Dict[str, Any], context: Dict[str, Any], what: str
    ) -> None:
        try:
            await self._call(lambda: self.client.update_venue(venue_id, payload), context)
            logger.info(f"Updated venue {venue_id} with {what}")
        except Exception as error:
            logger.warning(f"Failed to update venue {venue_id} with {what}: {error}")

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def resolve_event_entities(self, event: SourceEvent) -> ResolvedEntities:
        """
        Resolve venue, organizer, categories and geography of one event.

        An unresolved venue or organizer marks the event unresolved; a missing
        venue/organizer, an unresolved primary category or missing geography
        is noted in ``errors`` only.
        """
        context = {"eventId": event.id, "eventTitle": event.title}
        self.error_log.log_info(
            f"Resolving entities for event: {event.title} ({event.id})",
            ImportStage.ENTITY_RESOLUTION,
            context,
        )
        result = ResolvedEntities()

        def note(message: str, unresolved: bool = False, **extra: Any) -> None:
            result.errors.append(message)
            if unresolved:
                result.resolved = False
            self.error_log.log_entity_error(
                message, ImportStage.ENTITY_RESOLUTION, {**context, **extra}
            )

        try:
            venue = event.venue_payload
            if venue:
                venue_name = venue.get("venue")
                resolution = await self.resolve_venue(venue)
                if resolution.ok:
                    result.entities["venue_id"] = resolution.value
                    geography = await self.get_venue_geography(resolution.value)
                    if geography:
                        result.geography = geography
                    else:
                        note(
                            f"Failed to retrieve geography for venue: {venue_name} ({resolution.value})",
                            venueId=resolution.value,
                            venueName=venue_name,
                        )
                else:
                    note(f"Venue not found: {venue_name}", unresolved=True, venueName=venue_name)
            else:
                note("No venue provided for event")

            organizer = event.organizer_payload
            if organizer:
                resolution = await self.resolve_organizer(organizer)
                if resolution.ok:
                    result.entities["organizer_id"] = resolution.value["id"]
                    result.entities["organizer_name"] = resolution.value["name"]
                else:
                    organizer_name = organizer.get("organizer") or "unknown"
                    note(
                        f"Organizer not found: {organizer_name}",
                        unresolved=True,
                        organizerName=organizer_name,
                    )
            else:
                note("No organizer provided for event")

            if event.categories:
                primary = event.categories[0]
                resolution = await self.resolve_category(primary)
                if resolution.ok:
                    result.entities["category_first_id"] = resolution.value["id"]
                    result.entities["category_first"] = resolution.value["name"]
                elif resolution.status != ResolutionStatus.IGNORED:
                    note(
                        f"Category not resolved: {primary.get('name')}",
                        categoryName=primary.get("name"),
                    )

                if len(event.categories) > 1:
                    resolution = await self.resolve_category(event.categories[1])
                    if resolution.ok:
                        result.entities["category_second_id"] = resolution.value["id"]
                        result.entities["category_second"] = resolution.value["name"]
            else:
                note("No categories provided for event")

        except Exception as error:
            self.error_log.log_processing_error(
                f"Error resolving entities for event: {event.title}",
                ImportStage.ENTITY_RESOLUTION,
                context,
                error,
            )
            result.resolved = False
            result.errors.append(f"Unexpected error: {error}")

        return result

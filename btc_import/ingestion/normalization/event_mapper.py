"""
Event mapping and validation.

Turns a source event plus its resolved entities into the TargetEvent written
to the target API, and checks that event before it is sent.

Source timestamps come in pairs: local ``start_date``/``end_date`` and UTC
``utc_start_date``/``utc_end_date`` (``YYYY-MM-DD HH:MM:SS``). UTC wins when
present; a local-only timestamp is read in the event's ``timezone`` when it
is a known IANA zone and as UTC otherwise.
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from btc_import.ingestion.errors import ErrorLog, ImportStage
from btc_import.ingestion.resolution.resolver import ResolvedEntities
from btc_import.schemas.event import SourceEvent, TargetEvent

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = (
    ("appId", "Application ID"),
    ("title", "Title"),
    ("startDate", "Start Date"),
    ("endDate", "End Date"),
    ("ownerOrganizerID", "Organizer ID"),
    ("ownerOrganizerName", "Organizer Name"),
    ("venueID", "Venue ID"),
    ("expiresAt", "Expiration Date"),
)

DATE_FIELDS = ("startDate", "endDate", "expiresAt", "discoveredFirstDate", "discoveredLastDate")

# (id field, name field)
CATEGORY_PAIRS = (
    ("categoryFirstId", "categoryFirst"),
    ("categorySecondId", "categorySecond"),
)


def format_iso(value: datetime) -> str:
    """UTC ISO-8601 with millisecond precision and a ``Z`` suffix."""
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string; naive values are taken as UTC. None if unparseable."""
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def _zone(name: Optional[str]):
    if not name:
        return UTC
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.debug(f"Unknown timezone {name!r}, reading local time as UTC")
        return UTC


def _aware(value: datetime, zone) -> datetime:
    """Attach ``zone`` to a naive value; explicit offsets are kept. Returns UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=zone)
    return value.astimezone(UTC)


def source_timestamp(utc_value: Optional[str], local_value: Optional[str], timezone: Optional[str]) -> datetime:
    """
    Resolve one source timestamp pair to an aware UTC datetime.

    Raises:
        ValueError: when neither value is present or parseable
    """
    if utc_value:
        return _aware(datetime.fromisoformat(utc_value), UTC)
    if local_value:
        return _aware(datetime.fromisoformat(local_value), _zone(timezone))
    raise ValueError("Event has no usable timestamp")


def map_to_target_event(
    source_event: SourceEvent,
    resolved: ResolvedEntities,
    app_id: str,
    now: Optional[datetime] = None,
) -> TargetEvent:
    """
    Map a source event to the target event schema.

    Args:
        source_event: Event from the source API
        resolved: Resolved entity ids and geography
        app_id: Target application id
        now: Discovery timestamp, defaults to the current time

    Returns:
        TargetEvent
    """
    start = source_timestamp(
        source_event.utc_start_date, source_event.start_date, source_event.timezone
    )
    end = source_timestamp(source_event.utc_end_date, source_event.end_date, source_event.timezone)
    discovered = format_iso(now or datetime.now(UTC))

    geography: Dict[str, Any] = {}
    if resolved.geography:
        geography = resolved.geography.model_dump()

    entities = resolved.entities
    return TargetEvent(
        app_id=app_id,
        title=source_event.title,
        description=source_event.description,
        start_date=format_iso(start),
        end_date=format_iso(end),
        all_day=bool(source_event.all_day),
        cost=source_event.cost or None,
        venue_id=entities.get("venue_id"),
        owner_organizer_id=entities.get("organizer_id"),
        owner_organizer_name=entities.get("organizer_name"),
        category_first_id=entities.get("category_first_id"),
        category_first=entities.get("category_first"),
        category_second_id=entities.get("category_second_id"),
        category_second=entities.get("category_second"),
        venue_geolocation=geography.get("venue_geolocation"),
        mastered_city_id=geography.get("mastered_city_id"),
        mastered_city_name=geography.get("mastered_city_name"),
        mastered_city_geolocation=geography.get("mastered_city_geolocation"),
        mastered_division_id=geography.get("mastered_division_id"),
        mastered_division_name=geography.get("mastered_division_name"),
        mastered_region_id=geography.get("mastered_region_id"),
        mastered_region_name=geography.get("mastered_region_name"),
        discovered_first_date=discovered,
        discovered_last_date=discovered,
        discovered_comments=f"Imported from BTC event ID: {source_event.id}",
        expires_at=format_iso(end + timedelta(days=1)),
        event_image=source_event.image_url,
    )


@dataclass
class ValidationResult:
    valid: bool = True
    errors: List[str] = field(default_factory=list)


def validate_target_event(
    event: TargetEvent,
    error_log: Optional[ErrorLog] = None,
) -> ValidationResult:
    """
    Check a target event before it is written.

    Missing required fields, unparseable dates and a start after the end
    make the event invalid. A category id without its name is reported but
    leaves ``valid`` unchanged. The event is never modified.
    """
    payload = event.to_payload()
    log_context = {"title": payload.get("title"), "startDate": payload.get("startDate")}
    result = ValidationResult()

    def report(message: str, invalidates: bool, **extra: Any) -> None:
        if invalidates:
            result.valid = False
        result.errors.append(message)
        if error_log is not None:
            error_log.log_validation_error(message, ImportStage.VALIDATION, {**log_context, **extra})

    for field_name, label in REQUIRED_FIELDS:
        if not payload.get(field_name):
            report(f"Missing required field: {label}", True, field=field_name, label=label)

    for field_name in DATE_FIELDS:
        value = payload.get(field_name)
        if value and parse_iso(value) is None:
            report(f"Invalid date format for field: {field_name}", True, field=field_name, value=value)

    for id_field, name_field in CATEGORY_PAIRS:
        if payload.get(id_field) and not payload.get(name_field):
            report(
                f"Category ID present but category name missing ({id_field})",
                False,
                categoryId=payload.get(id_field),
            )

    start = parse_iso(payload.get("startDate"))
    end = parse_iso(payload.get("endDate"))
    if start and end and start > end:
        report(
            "Start date is after end date",
            True,
            startDate=payload.get("startDate"),
            endDate=payload.get("endDate"),
        )

    return result

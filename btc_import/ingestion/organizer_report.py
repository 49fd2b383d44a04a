"""
Organizer resolution report.

Resolves every organizer known to the source calendar and records which
resolution tier matched each one, so missing target organizers can be added
before an import.
"""

import logging
from collections import Counter
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from btc_import.ingestion.adapters.source_api import SourceAPIClient
from btc_import.ingestion.errors import ImportStage
from btc_import.ingestion.persist import RunArtifactWriter
from btc_import.ingestion.resolution.resolver import EntityResolver

logger = logging.getLogger(__name__)


async def build_organizer_report(
    source: SourceAPIClient,
    resolver: EntityResolver,
    writer: RunArtifactWriter,
    max_pages: Optional[int] = None,
) -> Tuple[Dict[str, Any], Path]:
    """
    Resolve all source organizers and persist the outcome.

    Args:
        source: Source API client
        resolver: Entity resolver (its cache is reused across organizers)
        writer: Artifact writer
        max_pages: Optional cap on the organizer pages fetched

    Returns:
        (report, path of the written report)
    """
    organizers = await resolver.executor.execute(
        lambda: source.fetch_all_organizers(max_pages=max_pages),
        ImportStage.EXTRACTION,
        {"maxPages": max_pages},
    )

    entries = []
    for organizer in organizers:
        name = organizer.get("organizer") if isinstance(organizer, dict) else None
        resolution = await resolver.resolve_organizer(organizer)
        entries.append(
            {
                "organizer": name,
                "success": resolution.ok,
                "method": resolution.method,
                "organizerId": resolution.value["id"] if resolution.ok else None,
                "status": resolution.status.value,
                "reason": resolution.reason,
            }
        )

    methods = Counter(entry["method"] for entry in entries if entry["method"])
    report = {
        "totalOrganizers": len(entries),
        "stats": {
            "successCount": sum(1 for entry in entries if entry["success"]),
            "failureCount": sum(1 for entry in entries if not entry["success"]),
            "methodsUsed": dict(methods),
        },
        "organizers": entries,
    }
    path = writer.organizer_report(report)
    logger.info(
        f"Resolved {report['stats']['successCount']}/{len(entries)} organizers, report at {path}"
    )
    return report, path

"""
Per-run resolution cache.

Owned by the orchestrator for exactly one run: created empty at run start,
grows monotonically, discarded at run end. Not safe to share between
concurrent runs.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Set


@dataclass
class ResolutionCache:
    venues: Dict[str, Any] = field(default_factory=dict)
    organizers: Dict[str, Any] = field(default_factory=dict)
    categories: Dict[str, Any] = field(default_factory=dict)
    categories_loaded: bool = False
    unmatched_venues: Set[str] = field(default_factory=set)
    unmatched_organizers: Set[str] = field(default_factory=set)
    unmatched_categories: Set[str] = field(default_factory=set)

    def unmatched_report(self) -> Dict[str, Any]:
        """Unmatched names plus cache sizes, as persisted after a run."""
        return {
            "venues": sorted(self.unmatched_venues),
            "organizers": sorted(self.unmatched_organizers),
            "categories": sorted(self.unmatched_categories),
            "stats": {
                "totalVenues": len(self.venues),
                "totalOrganizers": len(self.organizers),
                "totalCategories": len(self.categories),
                "unmatchedVenues": len(self.unmatched_venues),
                "unmatchedOrganizers": len(self.unmatched_organizers),
                "unmatchedCategories": len(self.unmatched_categories),
            },
        }

"""
Unit tests for the per-run resolution cache.
"""

from btc_import.ingestion.resolution import Resolution, ResolutionCache


def test_empty_report():
    report = ResolutionCache().unmatched_report()
    assert report["venues"] == []
    assert report["stats"] == {
        "totalVenues": 0,
        "totalOrganizers": 0,
        "totalCategories": 0,
        "unmatchedVenues": 0,
        "unmatchedOrganizers": 0,
        "unmatchedCategories": 0,
    }


def test_report_sorted_with_counts():
    cache = ResolutionCache()
    cache.venues["Hall"] = Resolution.resolved("v1", "name")
    cache.unmatched_venues.update({"Zeta Room", "Alpha Room"})
    cache.unmatched_organizers.add("Nobody")
    cache.unmatched_categories.add("Salsa")

    report = cache.unmatched_report()
    assert report["venues"] == ["Alpha Room", "Zeta Room"]
    assert report["organizers"] == ["Nobody"]
    assert report["categories"] == ["Salsa"]
    assert report["stats"]["totalVenues"] == 1
    assert report["stats"]["unmatchedVenues"] == 2


def test_caches_are_independent():
    first, second = ResolutionCache(), ResolutionCache()
    first.venues["Hall"] = Resolution.resolved("v1", "name")
    assert second.venues == {}

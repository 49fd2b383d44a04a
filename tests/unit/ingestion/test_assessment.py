"""
Unit tests for the go/no-go assessment.
"""

import pytest

from btc_import.ingestion.assessment import (
    NO_EVENTS_RECOMMENDATION,
    OVERALL_RECOMMENDATION,
    RESOLUTION_RECOMMENDATION,
    VALIDATION_RECOMMENDATION,
    assess,
)
from btc_import.ingestion.results import ImportRunResult


def make_result(total, resolved, valid, created) -> ImportRunResult:
    result = ImportRunResult(date="2024-01-01")
    result.btc_events.total = total
    result.btc_events.processed = total
    result.entity_resolution.success = resolved
    result.entity_resolution.failure = total - resolved
    result.validation.valid = valid
    result.validation.invalid = resolved - valid
    result.tt_events.created = created
    result.tt_events.failed = total - created
    return result.finish()


def test_all_thresholds_met():
    assessment = assess(make_result(total=10, resolved=10, valid=10, created=10))
    assert assessment.can_proceed
    assert assessment.verdict == "GO"
    assert assessment.recommendations == []


def test_three_recommendations():
    """10 fetched, 8 resolved, 7 valid, 7 created fails every threshold."""
    assessment = assess(make_result(total=10, resolved=8, valid=7, created=7))

    assert not assessment.can_proceed
    assert assessment.entity_resolution_rate == pytest.approx(0.8)
    assert assessment.validation_rate == pytest.approx(0.875)
    assert assessment.overall_success_rate == pytest.approx(0.7)
    assert assessment.recommendations == [
        RESOLUTION_RECOMMENDATION,
        VALIDATION_RECOMMENDATION,
        OVERALL_RECOMMENDATION,
    ]
    assert assessment.entity_failure_count == 2
    assert assessment.validation_failure_count == 1
    assert assessment.processing_failure_count == 0


def test_processing_failures_exclude_earlier_stages():
    """Only events lost after validation count as processing failures."""
    result = make_result(total=10, resolved=9, valid=8, created=6)
    assessment = assess(result)
    assert result.tt_events.failed == 4
    assert assessment.entity_failure_count == 1
    assert assessment.validation_failure_count == 1
    assert assessment.processing_failure_count == 2
    assert assessment.to_dict()["metrics"]["processingFailureCount"] == 2


def test_thresholds_are_inclusive():
    """A ratio exactly at its threshold passes."""
    assessment = assess(make_result(total=20, resolved=18, valid=18, created=17))
    assert assessment.entity_resolution_rate == pytest.approx(0.9)
    assert assessment.overall_success_rate == pytest.approx(0.85)
    assert assessment.can_proceed


def test_zero_events_blocks():
    assessment = assess(make_result(total=0, resolved=0, valid=0, created=0))
    assert not assessment.can_proceed
    assert assessment.entity_resolution_rate == 0.0
    assert assessment.validation_rate == 0.0
    assert assessment.recommendations == [NO_EVENTS_RECOMMENDATION]


def test_zero_resolved_gives_zero_validation_rate():
    assessment = assess(make_result(total=5, resolved=0, valid=0, created=0))
    assert assessment.validation_rate == 0.0
    assert VALIDATION_RECOMMENDATION in assessment.recommendations


def test_to_dict_and_summary():
    assessment = assess(make_result(total=10, resolved=8, valid=7, created=7))
    data = assessment.to_dict()
    assert data["canProceed"] is False
    assert data["metrics"]["entityResolutionRate"] == pytest.approx(0.8)
    assert data["thresholds"] == {
        "minimumResolutionRate": 0.9,
        "minimumValidationRate": 0.95,
        "minimumOverallRate": 0.85,
    }
    lines = assessment.summary_lines()
    assert lines[0] == "Go/No-Go Assessment: NO-GO"
    assert "- Entity Resolution Rate: 80.0% (Threshold: 90.0%)" in lines
    assert lines[-1] == f"3. {OVERALL_RECOMMENDATION}"

"""
Go/No-Go assessment of an import run.

Three success ratios are compared against fixed thresholds; any ratio
strictly below its threshold blocks the release and adds a recommendation.
A ratio whose denominator is zero is 0.0 and therefore fails.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from .results import ImportRunResult

logger = logging.getLogger(__name__)

MINIMUM_RESOLUTION_RATE = 0.9
MINIMUM_VALIDATION_RATE = 0.95
MINIMUM_OVERALL_RATE = 0.85

RESOLUTION_RECOMMENDATION = (
    "Entity resolution rate below threshold. Add missing entities and update mappings."
)
VALIDATION_RECOMMENDATION = (
    "Validation rate below threshold. Fix data quality issues in mapping process."
)
OVERALL_RECOMMENDATION = (
    "Overall success rate below threshold. Review failed events and address issues."
)
NO_EVENTS_RECOMMENDATION = "No source events were fetched; nothing to assess."


def _ratio(numerator: int, denominator: int) -> float:
    if denominator <= 0:
        return 0.0
    return numerator / denominator


@dataclass
class GoNoGoAssessment:
    can_proceed: bool
    entity_resolution_rate: float
    validation_rate: float
    overall_success_rate: float
    entity_failure_count: int
    validation_failure_count: int
    processing_failure_count: int
    recommendations: List[str] = field(default_factory=list)

    @property
    def verdict(self) -> str:
        return "GO" if self.can_proceed else "NO-GO"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "canProceed": self.can_proceed,
            "metrics": {
                "entityResolutionRate": self.entity_resolution_rate,
                "validationRate": self.validation_rate,
                "overallSuccessRate": self.overall_success_rate,
                "entityFailureCount": self.entity_failure_count,
                "validationFailureCount": self.validation_failure_count,
                "processingFailureCount": self.processing_failure_count,
            },
            "thresholds": {
                "minimumResolutionRate": MINIMUM_RESOLUTION_RATE,
                "minimumValidationRate": MINIMUM_VALIDATION_RATE,
                "minimumOverallRate": MINIMUM_OVERALL_RATE,
            },
            "recommendations": list(self.recommendations),
        }

    def summary_lines(self) -> List[str]:
        """Human-readable report lines."""
        lines = [
            f"Go/No-Go Assessment: {self.verdict}",
            f"- Entity Resolution Rate: {self.entity_resolution_rate:.1%} "
            f"(Threshold: {MINIMUM_RESOLUTION_RATE:.1%})",
            f"- Validation Rate: {self.validation_rate:.1%} "
            f"(Threshold: {MINIMUM_VALIDATION_RATE:.1%})",
            f"- Overall Success Rate: {self.overall_success_rate:.1%} "
            f"(Threshold: {MINIMUM_OVERALL_RATE:.1%})",
        ]
        for i, recommendation in enumerate(self.recommendations, start=1):
            lines.append(f"{i}. {recommendation}")
        return lines


def assess(result: ImportRunResult) -> GoNoGoAssessment:
    """
    Compute the go/no-go verdict of a run.

    Args:
        result: Finished ImportRunResult

    Returns:
        GoNoGoAssessment
    """
    total = result.btc_events.total
    resolved = result.entity_resolution.success
    # tt_events.failed also counts events dropped at resolution or validation
    processing_failures = max(
        result.tt_events.failed - result.entity_resolution.failure - result.validation.invalid, 0
    )

    assessment = GoNoGoAssessment(
        can_proceed=True,
        entity_resolution_rate=_ratio(resolved, total),
        validation_rate=_ratio(result.validation.valid, resolved),
        overall_success_rate=_ratio(result.tt_events.created, total),
        entity_failure_count=result.entity_resolution.failure,
        validation_failure_count=result.validation.invalid,
        processing_failure_count=processing_failures,
    )

    if total == 0:
        assessment.can_proceed = False
        assessment.recommendations.append(NO_EVENTS_RECOMMENDATION)
        return assessment

    if assessment.entity_resolution_rate < MINIMUM_RESOLUTION_RATE:
        assessment.can_proceed = False
        assessment.recommendations.append(RESOLUTION_RECOMMENDATION)
    if assessment.validation_rate < MINIMUM_VALIDATION_RATE:
        assessment.can_proceed = False
        assessment.recommendations.append(VALIDATION_RECOMMENDATION)
    if assessment.overall_success_rate < MINIMUM_OVERALL_RATE:
        assessment.can_proceed = False
        assessment.recommendations.append(OVERALL_RECOMMENDATION)

    return assessment

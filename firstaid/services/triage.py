from __future__ import annotations

from firstaid.core.errors import IncompleteAssessment
from firstaid.models.schemas import Assessment, GuidanceResult, Priority
from firstaid.services.instructions import (
    bleeding_instructions,
    cpr_instructions,
    stable_instructions,
    unconscious_instructions,
)


def needs_cpr(assessment: Assessment) -> bool:
    return assessment.is_conscious is False and assessment.is_breathing is False


def compute_guidance(assessment: Assessment, ambulance: str = "108") -> GuidanceResult:
    """Map a completed assessment to local first-aid guidance.

    Rules are checked in order of clinical severity and the first match wins:
    unconscious and not breathing, unconscious, heavy bleeding, then stable.
    """
    if not assessment.is_complete:
        raise IncompleteAssessment(q.value for q in assessment.missing)

    if needs_cpr(assessment):
        return GuidanceResult(
            instructions=cpr_instructions(ambulance),
            show_cpr=True,
            priority=Priority.CRITICAL,
        )

    if assessment.is_conscious is False:
        return GuidanceResult(
            instructions=unconscious_instructions(ambulance),
            show_cpr=False,
            priority=Priority.URGENT,
        )

    if assessment.has_heavy_bleeding is True:
        return GuidanceResult(
            instructions=bleeding_instructions(ambulance),
            show_cpr=False,
            priority=Priority.URGENT,
        )

    return GuidanceResult(
        instructions=stable_instructions(ambulance),
        show_cpr=False,
        priority=Priority.MODERATE,
    )

"""
Triage rules: first match wins, ordered by clinical severity.
"""
from __future__ import annotations

import pytest

from firstaid.core.errors import IncompleteAssessment
from firstaid.models.schemas import Assessment, Priority, Question
from firstaid.services.triage import compute_guidance, needs_cpr
from tests.fakes import answers


def _has_call_step(instructions) -> bool:
    return any("call" in step.lower() for step in instructions[:2])


@pytest.mark.parametrize("bleeding", [True, False])
def test_unconscious_not_breathing_is_critical_with_cpr(bleeding):
    result = compute_guidance(answers(False, False, bleeding))
    assert result.priority is Priority.CRITICAL
    assert result.show_cpr is True
    assert any("cpr" in step.lower() for step in result.instructions)


@pytest.mark.parametrize("bleeding", [True, False])
def test_unconscious_breathing_is_urgent_recovery_position(bleeding):
    result = compute_guidance(answers(False, True, bleeding))
    assert result.priority is Priority.URGENT
    assert result.show_cpr is False
    assert any("recovery position" in step for step in result.instructions)


def test_conscious_with_heavy_bleeding_is_urgent():
    result = compute_guidance(answers(True, True, True))
    assert result.priority is Priority.URGENT
    assert result.show_cpr is False
    assert any("pressure" in step for step in result.instructions)


def test_conscious_not_breathing_normally_with_bleeding_uses_bleeding_rule():
    result = compute_guidance(answers(True, False, True))
    assert result.priority is Priority.URGENT
    assert result.show_cpr is False


def test_stable_is_moderate_without_cpr_step():
    result = compute_guidance(answers(True, True, False))
    assert result.priority is Priority.MODERATE
    assert result.show_cpr is False
    assert not any("cpr" in step.lower() for step in result.instructions)


@pytest.mark.parametrize("conscious", [True, False])
@pytest.mark.parametrize("breathing", [True, False])
@pytest.mark.parametrize("bleeding", [True, False])
def test_every_branch_has_short_list_with_early_emergency_call(conscious, breathing, bleeding):
    result = compute_guidance(answers(conscious, breathing, bleeding))
    assert 4 <= len(result.instructions) <= 6
    assert _has_call_step(result.instructions)


def test_same_assessment_gives_identical_result():
    assessment = answers(False, False, True)
    first = compute_guidance(assessment)
    second = compute_guidance(assessment)
    assert first == second
    assert first.model_dump_json() == second.model_dump_json()


def test_ambulance_number_is_configurable():
    result = compute_guidance(answers(True, True, True), ambulance="999")
    assert "999" in result.instructions[0]


def test_incomplete_assessment_raises():
    partial = Assessment(is_conscious=False, is_breathing=False)
    with pytest.raises(IncompleteAssessment) as excinfo:
        compute_guidance(partial)
    assert excinfo.value.missing == [Question.HAS_HEAVY_BLEEDING.value]


def test_needs_cpr_only_when_unconscious_and_not_breathing():
    assert needs_cpr(answers(False, False, False))
    assert not needs_cpr(answers(False, True, False))
    assert not needs_cpr(answers(True, False, False))
    assert not needs_cpr(Assessment())


def test_priority_ordering():
    assert Priority.highest(Priority.MODERATE, Priority.CRITICAL, Priority.URGENT) is Priority.CRITICAL
    assert Priority.CRITICAL.rank > Priority.URGENT.rank > Priority.MODERATE.rank


def test_priority_operators_follow_severity():
    assert Priority.CRITICAL > Priority.URGENT > Priority.MODERATE
    assert Priority.MODERATE < Priority.URGENT < Priority.CRITICAL
    assert Priority.URGENT >= Priority.URGENT
    assert Priority.URGENT <= Priority.CRITICAL
    assert max(Priority.CRITICAL, Priority.URGENT) is Priority.CRITICAL
    assert min(Priority.MODERATE, Priority.URGENT) is Priority.MODERATE
    assert sorted([Priority.URGENT, Priority.CRITICAL, Priority.MODERATE]) == [
        Priority.MODERATE,
        Priority.URGENT,
        Priority.CRITICAL,
    ]

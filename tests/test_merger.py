"""
Two-phase guidance: local result first, AI result merged in later without
ever lowering severity; stale enhancements are dropped.
"""
from __future__ import annotations

import asyncio

import pytest

from firstaid.core.errors import EnhancementError, IncompleteAssessment
from firstaid.models.schemas import Assessment, GuidanceResult, GuidanceSource, Location, Priority
from firstaid.services.merger import GuidanceMerger, first_aid_with_fallback, merge_guidance
from firstaid.services.triage import compute_guidance
from tests.fakes import (
    ControlledEnhancer,
    ImmediateEnhancer,
    RecordingLogger,
    answers,
    enhanced_result,
)


def test_merge_ors_cpr_and_keeps_highest_priority():
    local = compute_guidance(answers(False, False, False))
    remote = enhanced_result(priority=Priority.MODERATE, show_cpr=False)
    merged = merge_guidance(local, remote)
    assert merged.show_cpr is True
    assert merged.priority is Priority.CRITICAL
    assert merged.instructions == remote.instructions


def test_merge_accepts_escalation_from_remote():
    local = compute_guidance(answers(True, True, False))
    merged = merge_guidance(local, enhanced_result(priority=Priority.URGENT))
    assert merged.priority is Priority.URGENT


def test_merge_keeps_local_instructions_when_remote_is_empty():
    local = compute_guidance(answers(True, True, True))
    empty = GuidanceResult(instructions=[], show_cpr=False, priority=Priority.URGENT)
    assert merge_guidance(local, empty).instructions == local.instructions


def test_start_without_event_loop_is_local_only():
    merger = GuidanceMerger(enhancer=ImmediateEnhancer(enhanced_result()))
    state = merger.start(answers(True, True, False))
    assert state.source is GuidanceSource.LOCAL
    assert state.is_enhancing is False
    assert merger.pending == 0


def test_start_rejects_incomplete_assessment_and_keeps_state():
    merger = GuidanceMerger()
    with pytest.raises(IncompleteAssessment):
        merger.start(Assessment(is_conscious=True))
    assert merger.state is None
    assert merger.generation == 0


@pytest.mark.asyncio
async def test_local_result_is_visible_before_enhancement_resolves():
    enhancer = ControlledEnhancer(result=enhanced_result(priority=Priority.CRITICAL, show_cpr=True))
    merger = GuidanceMerger(enhancer=enhancer)
    assessment = answers(False, False, True)

    state = merger.start(assessment)
    assert state.source is GuidanceSource.LOCAL
    assert state.is_enhancing is True
    assert state.result == compute_guidance(assessment)

    await asyncio.sleep(0)
    assert merger.state.source is GuidanceSource.LOCAL
    assert enhancer.calls == [assessment]

    enhancer.release()
    await merger.settle()
    assert merger.state.source is GuidanceSource.ENHANCED
    assert merger.state.is_enhancing is False
    assert merger.state.result.instructions == enhancer.result.instructions


@pytest.mark.asyncio
async def test_enhancement_cannot_turn_off_cpr():
    enhancer = ControlledEnhancer(result=enhanced_result(priority=Priority.MODERATE, show_cpr=False))
    merger = GuidanceMerger(enhancer=enhancer)
    merger.start(answers(False, False, False))

    enhancer.release()
    await merger.settle()
    assert merger.state.source is GuidanceSource.ENHANCED
    assert merger.state.result.show_cpr is True
    assert merger.state.result.priority is Priority.CRITICAL


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [EnhancementError("bad json"), TimeoutError("slow"), ConnectionError("offline"), ValueError("junk")],
)
async def test_enhancement_failure_keeps_local_result(error):
    enhancer = ControlledEnhancer(error=error)
    merger = GuidanceMerger(enhancer=enhancer)
    assessment = answers(True, True, True)
    merger.start(assessment)

    enhancer.release()
    await merger.settle()
    assert merger.state.source is GuidanceSource.LOCAL
    assert merger.state.is_enhancing is False
    assert merger.state.result == compute_guidance(assessment)


@pytest.mark.asyncio
async def test_malformed_payload_is_ignored():
    merger = GuidanceMerger(enhancer=ImmediateEnhancer({"instructions": "not a list"}))
    merger.start(answers(True, True, False))
    await merger.settle()
    assert merger.state.source is GuidanceSource.LOCAL
    assert merger.state.is_enhancing is False


@pytest.mark.asyncio
async def test_empty_enhanced_instructions_are_ignored():
    empty = GuidanceResult(instructions=[], show_cpr=False, priority=Priority.MODERATE)
    merger = GuidanceMerger(enhancer=ImmediateEnhancer(empty))
    merger.start(answers(True, True, False))
    await merger.settle()
    assert merger.state.source is GuidanceSource.LOCAL


@pytest.mark.asyncio
async def test_offline_skips_enhancement():
    enhancer = ImmediateEnhancer(enhanced_result())
    merger = GuidanceMerger(enhancer=enhancer, is_online=lambda: False)
    state = merger.start(answers(True, True, False))
    await merger.settle()
    assert state.is_enhancing is False
    assert enhancer.calls == 0
    assert merger.state.source is GuidanceSource.LOCAL


@pytest.mark.asyncio
async def test_cancel_discards_late_enhancement():
    enhancer = ControlledEnhancer()
    merger = GuidanceMerger(enhancer=enhancer)
    merger.start(answers(True, True, False))
    await asyncio.sleep(0)

    merger.cancel()
    enhancer.release()
    await merger.settle()
    assert merger.state is None


@pytest.mark.asyncio
async def test_late_enhancement_does_not_touch_newer_generation():
    slow = ControlledEnhancer(result=enhanced_result(priority=Priority.CRITICAL, show_cpr=True))
    merger = GuidanceMerger(enhancer=slow)
    merger.start(answers(False, False, False))
    await asyncio.sleep(0)

    merger.enhancer = None
    newer = merger.start(answers(True, True, False))
    slow.release()
    await merger.settle()

    assert merger.state == newer
    assert merger.state.result.priority is Priority.MODERATE
    assert merger.state.generation == 2


@pytest.mark.asyncio
async def test_logger_runs_and_its_failure_does_not_affect_guidance():
    log = RecordingLogger(error=RuntimeError("db down"))
    merger = GuidanceMerger(emergency_logger=log)
    location = Location(latitude=12.97, longitude=77.59, accuracy=15)
    assessment = answers(False, True, False)

    state = merger.start(assessment, location)
    await merger.settle()
    assert log.entries == [(assessment, location)]
    assert merger.state == state


@pytest.mark.asyncio
async def test_first_aid_with_fallback():
    assessment = answers(False, False, False)
    local = compute_guidance(assessment)

    assert await first_aid_with_fallback(assessment, None) == local
    failing = ControlledEnhancer(error=EnhancementError("boom"))
    failing.release()
    assert await first_aid_with_fallback(assessment, failing) == local

    merged = await first_aid_with_fallback(assessment, ImmediateEnhancer(enhanced_result()))
    assert merged.show_cpr is True
    assert merged.priority is Priority.CRITICAL


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"instructions": "x"},
        {"priority": "critical"},
        GuidanceResult(instructions=[], show_cpr=False, priority=Priority.MODERATE),
    ],
)
async def test_first_aid_with_fallback_ignores_malformed_reply(payload):
    assessment = answers(True, True, False)
    result = await first_aid_with_fallback(assessment, ImmediateEnhancer(payload))
    assert result == compute_guidance(assessment)


@pytest.mark.asyncio
async def test_first_aid_with_fallback_accepts_valid_dict_reply():
    reply = {"instructions": ["Call 108", "Stay close"], "showCPR": False, "priority": "urgent"}
    result = await first_aid_with_fallback(answers(True, True, False), ImmediateEnhancer(reply))
    assert result.instructions == ["Call 108", "Stay close"]
    assert result.priority is Priority.URGENT


def test_start_without_event_loop_skips_logger_but_publishes_guidance():
    log = RecordingLogger()
    merger = GuidanceMerger(emergency_logger=log)
    state = merger.start(answers(False, False, False))
    assert state.result.show_cpr is True
    assert log.entries == []
    assert merger.pending == 0

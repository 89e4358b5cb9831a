from __future__ import annotations

import asyncio
import logging
from typing import Callable, Coroutine, Optional, Set

from firstaid.core.errors import EnhancementError
from firstaid.models.schemas import (
    Assessment,
    GuidanceResult,
    GuidanceSource,
    GuidanceState,
    Location,
    Priority,
)
from firstaid.services.emergency_log import EmergencyLogger
from firstaid.services.enhancement import EnhancementProvider
from firstaid.services.triage import compute_guidance

logger = logging.getLogger(__name__)


def merge_guidance(local: GuidanceResult, enhanced: GuidanceResult) -> GuidanceResult:
    """Combine local and remote guidance without lowering severity.

    The CPR flag is OR-ed and the higher priority wins, so a remote answer can
    add detail but never de-escalate. Empty remote instructions keep the local list.
    """
    return GuidanceResult(
        instructions=list(enhanced.instructions) or list(local.instructions),
        show_cpr=local.show_cpr or enhanced.show_cpr,
        priority=Priority.highest(local.priority, enhanced.priority),
    )


def _always_online() -> bool:
    return True


async def _request_enhancement(enhancer: EnhancementProvider, assessment: Assessment) -> GuidanceResult:
    enhanced = await enhancer.enhance(assessment)
    if not isinstance(enhanced, GuidanceResult):
        enhanced = GuidanceResult.model_validate(enhanced)
    if not enhanced.instructions:
        raise EnhancementError("enhanced guidance has no instructions")
    return enhanced


def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class GuidanceMerger:
    """Shows local guidance at once and swaps in AI guidance when it arrives.

    ``start`` publishes the local result synchronously, then spawns the
    enhancement and the emergency log as detached tasks. Every ``start`` and
    ``cancel`` bumps the generation; an enhancement that completes for an
    older generation is dropped.

    Detached tasks need a running event loop. Without one, ``start`` still
    publishes the local result but neither requests enhancement nor writes
    the emergency log; the skipped log is reported at WARNING.
    """

    def __init__(
        self,
        enhancer: Optional[EnhancementProvider] = None,
        emergency_logger: Optional[EmergencyLogger] = None,
        is_online: Callable[[], bool] = _always_online,
        ambulance: str = "108",
    ):
        self.enhancer = enhancer
        self.emergency_logger = emergency_logger
        self.is_online = is_online
        self.ambulance = ambulance
        self._generation = 0
        self._state: Optional[GuidanceState] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def state(self) -> Optional[GuidanceState]:
        return self._state

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def start(self, assessment: Assessment, location: Optional[Location] = None) -> GuidanceState:
        local = compute_guidance(assessment, self.ambulance)
        self._generation += 1
        generation = self._generation

        loop = _running_loop()
        attempt = self.enhancer is not None and loop is not None and self.is_online()
        self._state = GuidanceState(
            result=local,
            source=GuidanceSource.LOCAL,
            is_enhancing=attempt,
            generation=generation,
        )

        if self.emergency_logger is not None:
            if loop is None:
                logger.warning("no running event loop, emergency for generation %s not logged", generation)
            else:
                self._spawn(loop, self._log(assessment, location))
        if attempt:
            self._spawn(loop, self._enhance(generation, assessment, local))
        return self._state

    def cancel(self) -> int:
        self._generation += 1
        self._state = None
        return self._generation

    async def settle(self) -> None:
        """Wait for every detached task, including ones spawned meanwhile."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _spawn(self, loop: asyncio.AbstractEventLoop, coro: Coroutine) -> None:
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _enhance(self, generation: int, assessment: Assessment, local: GuidanceResult) -> None:
        enhanced: Optional[GuidanceResult]
        try:
            enhanced = await _request_enhancement(self.enhancer, assessment)
        except Exception as exc:
            logger.warning("guidance enhancement failed, keeping local guidance: %s", exc)
            enhanced = None
        self._apply(generation, local, enhanced)

    def _apply(self, generation: int, local: GuidanceResult, enhanced: Optional[GuidanceResult]) -> None:
        if generation != self._generation or self._state is None:
            logger.debug("dropping enhancement for generation %s, current is %s", generation, self._generation)
            return
        if enhanced is None:
            self._state = GuidanceState(
                result=self._state.result,
                source=self._state.source,
                is_enhancing=False,
                generation=generation,
            )
            return
        self._state = GuidanceState(
            result=merge_guidance(local, enhanced),
            source=GuidanceSource.ENHANCED,
            is_enhancing=False,
            generation=generation,
        )

    async def _log(self, assessment: Assessment, location: Optional[Location]) -> None:
        try:
            await self.emergency_logger.log(assessment, location)
        except Exception as exc:
            logger.warning("emergency logging failed: %s", exc)


async def first_aid_with_fallback(
    assessment: Assessment,
    enhancer: Optional[EnhancementProvider],
    ambulance: str = "108",
) -> GuidanceResult:
    """One-shot guidance: AI guidance merged over local rules, or local rules alone."""
    local = compute_guidance(assessment, ambulance)
    if enhancer is None:
        return local
    try:
        enhanced = await _request_enhancement(enhancer, assessment)
    except Exception as exc:
        logger.warning("guidance enhancement failed, returning local guidance: %s", exc)
        return local
    return merge_guidance(local, enhanced)

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from typing import Callable, Optional
from uuid import uuid4

from firstaid.core.errors import InvalidTransition, SessionNotFound
from firstaid.models.schemas import (
    ASKING_STEPS,
    Assessment,
    Question,
    SessionSnapshot,
    Step,
    Location,
)
from firstaid.services.merger import GuidanceMerger

logger = logging.getLogger(__name__)


class AssessmentSession:
    """Three-question walk: idle -> asking_q1..q3 -> complete.

    Entering ``complete`` starts the guidance merger. Going back from
    ``complete`` or restarting invalidates any enhancement still in flight.
    """

    def __init__(self, merger: Optional[GuidanceMerger] = None, session_id: Optional[str] = None):
        self.session_id = session_id or uuid4().hex
        self.merger = merger or GuidanceMerger()
        self.step = Step.IDLE
        self.assessment = Assessment()
        self.location: Optional[Location] = None

    def start_assessment(self) -> SessionSnapshot:
        if self.step is not Step.IDLE:
            self.restart()
        self.step = Step.ASKING_Q1
        return self.current_state()

    def answer(self, question: Question, value: bool) -> SessionSnapshot:
        if self.step not in ASKING_STEPS:
            raise InvalidTransition(f"cannot answer while {self.step.value}")
        question = Question(question)
        expected = Question.ordered()[ASKING_STEPS.index(self.step)]
        if question is not expected:
            raise InvalidTransition(f"expected an answer to {expected.value}, got {question.value}")

        self.assessment = self.assessment.with_answer(question, bool(value))
        if self.step is Step.ASKING_Q3:
            self.step = Step.COMPLETE
            self.merger.start(self.assessment, self.location)
        else:
            self.step = ASKING_STEPS[ASKING_STEPS.index(self.step) + 1]
        return self.current_state()

    def back(self) -> SessionSnapshot:
        if self.step is Step.IDLE:
            return self.current_state()
        if self.step is Step.ASKING_Q1:
            self.assessment = Assessment()
            self.step = Step.IDLE
        elif self.step is Step.COMPLETE:
            self.merger.cancel()
            self.assessment = self.assessment.cleared(Question.HAS_HEAVY_BLEEDING)
            self.step = Step.ASKING_Q3
        else:
            k = ASKING_STEPS.index(self.step)
            self.assessment = self.assessment.cleared(Question.ordered()[k - 1])
            self.step = ASKING_STEPS[k - 1]
        return self.current_state()

    def restart(self) -> SessionSnapshot:
        generation = self.merger.cancel()
        logger.debug("session %s restarted, generation %s", self.session_id, generation)
        self.assessment = Assessment()
        self.step = Step.IDLE
        return self.current_state()

    def set_location(self, location: Optional[Location]) -> SessionSnapshot:
        self.location = location
        return self.current_state()

    def current_state(self) -> SessionSnapshot:
        return SessionSnapshot(
            session_id=self.session_id,
            step=self.step,
            assessment=self.assessment,
            guidance=self.merger.state if self.step is Step.COMPLETE else None,
            location=self.location,
        )


class SessionStore:
    """Per-user sessions for the HTTP surface; nothing is shared between them.

    Sessions idle for longer than ``ttl_s`` are dropped, and once
    ``max_sessions`` is reached the least recently used one is evicted.
    """

    def __init__(
        self,
        merger_factory: Callable[[], GuidanceMerger] = GuidanceMerger,
        ttl_s: float = 1800,
        max_sessions: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._merger_factory = merger_factory
        self.ttl_s = ttl_s
        self.max_sessions = max_sessions
        self._clock = clock
        # session id -> (session, last used), least recently used first
        self._sessions: "OrderedDict[str, tuple]" = OrderedDict()

    def create(self) -> AssessmentSession:
        self.prune()
        while len(self._sessions) >= self.max_sessions:
            oldest = next(iter(self._sessions))
            logger.info("session store full, evicting %s", oldest)
            self._drop(oldest)
        session = AssessmentSession(merger=self._merger_factory())
        self._sessions[session.session_id] = (session, self._clock())
        return session

    def get(self, session_id: str) -> AssessmentSession:
        self.prune()
        try:
            session, _ = self._sessions[session_id]
        except KeyError:
            raise SessionNotFound(f"no session {session_id}") from None
        self._sessions[session_id] = (session, self._clock())
        self._sessions.move_to_end(session_id)
        return session

    def discard(self, session_id: str) -> None:
        self.get(session_id)
        self._drop(session_id)

    def prune(self) -> int:
        """Drop sessions idle for longer than the TTL; returns how many went."""
        cutoff = self._clock() - self.ttl_s
        expired = [sid for sid, (_, seen) in self._sessions.items() if seen < cutoff]
        for sid in expired:
            logger.debug("session %s expired", sid)
            self._drop(sid)
        return len(expired)

    def _drop(self, session_id: str) -> None:
        session, _ = self._sessions.pop(session_id)
        session.merger.cancel()

    def __len__(self) -> int:
        return len(self._sessions)

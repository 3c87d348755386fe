"""
Session lifecycle.

    not_started -> setup -> in_progress -> uploading -> transcribing -> scoring -> completed

``precheck`` exists for the client but is never persisted: consent and the
device check are stored as flags while the session stays ``not_started``.
``aborted`` and ``expired`` can be entered from any open status and are
terminal, as is ``completed``. The only backward edges are the stage
rollbacks ``transcribing -> uploading`` and ``scoring -> transcribing``.
"""
import logging
import random
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..core.exceptions import NotEnoughQuestions, StatusConflict
from ..models.question import Question
from ..models.session import ExamSession
from .session_store import SessionStore

logger = logging.getLogger(__name__)


class SessionStatus(str, Enum):
    NOT_STARTED = "not_started"
    PRECHECK = "precheck"
    SETUP = "setup"
    IN_PROGRESS = "in_progress"
    UPLOADING = "uploading"
    TRANSCRIBING = "transcribing"
    SCORING = "scoring"
    COMPLETED = "completed"
    ABORTED = "aborted"
    EXPIRED = "expired"


TERMINAL_STATUSES = frozenset({SessionStatus.COMPLETED, SessionStatus.ABORTED, SessionStatus.EXPIRED})

FORWARD_TRANSITIONS = {
    SessionStatus.NOT_STARTED: {SessionStatus.SETUP},
    SessionStatus.PRECHECK: {SessionStatus.SETUP},
    SessionStatus.SETUP: {SessionStatus.IN_PROGRESS},
    SessionStatus.IN_PROGRESS: {SessionStatus.UPLOADING},
    SessionStatus.UPLOADING: {SessionStatus.TRANSCRIBING},
    SessionStatus.TRANSCRIBING: {SessionStatus.SCORING},
    SessionStatus.SCORING: {SessionStatus.COMPLETED},
}

ROLLBACK_TRANSITIONS = {
    SessionStatus.TRANSCRIBING: SessionStatus.UPLOADING,
    SessionStatus.SCORING: SessionStatus.TRANSCRIBING,
}


def is_terminal(status: str) -> bool:
    return SessionStatus(status) in TERMINAL_STATUSES


def can_transition(current: str, target: str) -> bool:
    current, target = SessionStatus(current), SessionStatus(target)
    if current in TERMINAL_STATUSES:
        return False
    if target in (SessionStatus.ABORTED, SessionStatus.EXPIRED):
        return True
    if target in FORWARD_TRANSITIONS.get(current, ()):
        return True
    return ROLLBACK_TRANSITIONS.get(current) == target


def draw_questions(bank: Sequence[Question], count: int, rng: Optional[random.Random] = None) -> List[Question]:
    """Exactly ``count`` distinct questions, without replacement."""
    if len(bank) < count:
        raise NotEnoughQuestions(available=len(bank), required=count)
    return (rng or random).sample(list(bank), count)


class SessionStateMachine:
    """The only writer of ``ExamSession.status``."""

    def __init__(self, store: SessionStore):
        self.store = store

    async def transition(
        self,
        session: ExamSession,
        target: SessionStatus,
        *,
        expected: Optional[SessionStatus] = None,
        fields: Optional[Dict[str, Any]] = None,
        answers: Optional[Dict[int, Dict[str, Any]]] = None,
        new_answers: Optional[Iterable[Dict[str, Any]]] = None,
    ) -> ExamSession:
        """
        Move ``session`` from ``expected`` (defaults to its loaded status) to
        ``target``. The write only lands if the persisted status and version
        still match what was read.
        """
        expected = SessionStatus(expected or session.status)
        if SessionStatus(session.status) != expected:
            raise StatusConflict(current_status=session.status, expected_status=expected.value)
        if not can_transition(expected, target):
            raise StatusConflict(
                f"Cannot move session from {expected.value} to {target.value}",
                current_status=session.status,
                expected_status=expected.value,
            )

        values = dict(fields or {})
        values["status"] = target.value
        if target in TERMINAL_STATUSES:
            values["active_key"] = None

        updated = await self.store.write(
            session.id,
            expected_version=session.version,
            expected_status=expected.value,
            fields=values,
            answers=answers,
            new_answers=new_answers,
        )
        logger.info(f"session {session.id}: {expected.value} -> {target.value}")
        return updated

    async def rollback(self, session_id: str, from_status: SessionStatus) -> Optional[ExamSession]:
        """
        Return a failed stage to its previous stable status.

        Only matches on status: the failed stage may have bumped the version
        with partial writes of its own.
        """
        target = ROLLBACK_TRANSITIONS[from_status]
        await self.store.db.rollback()
        try:
            restored = await self.store.compare_and_set_status(session_id, from_status.value, target.value)
        except StatusConflict as exc:
            logger.error(f"session {session_id}: rollback {from_status.value} -> {target.value} skipped, {exc.context}")
            return None
        logger.error(f"session {session_id}: rolled back {from_status.value} -> {target.value}")
        return restored

    async def close(self, session: ExamSession, target: SessionStatus, reason: Optional[str] = None) -> ExamSession:
        if target not in (SessionStatus.ABORTED, SessionStatus.EXPIRED):
            raise ValueError(f"{target.value} is not a closing status")
        if is_terminal(session.status):
            raise StatusConflict(
                f"Session is already {session.status}",
                current_status=session.status,
            )
        fields = {}
        if reason:
            fields["notes"] = f"{session.notes}\n{reason}" if session.notes else reason
        return await self.transition(session, target, fields=fields)

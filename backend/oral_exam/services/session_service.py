import logging
import random
from datetime import datetime
from typing import Callable, Optional

from ..core.config import settings
from ..core.exceptions import InvalidRequest, StatusConflict
from ..models.session import ExamSession
from ..utils.timezone import utc_now
from .roster_gate import RosterGate
from .session_store import SessionStore
from .state_machine import SessionStateMachine, SessionStatus, draw_questions

logger = logging.getLogger(__name__)


class SessionService:
    """Pre-exam steps: consent, setup (question draw) and start."""

    def __init__(
        self,
        store: SessionStore,
        clock: Callable[[], datetime] = utc_now,
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self.clock = clock
        self.rng = rng
        self.gate = RosterGate(store, clock=clock)
        self.machine = SessionStateMachine(store)

    async def record_consent(self, token: Optional[str]) -> ExamSession:
        if not token:
            raise InvalidRequest(required=["token"])
        claim, _ = await self.gate.admit(token)
        session = await self.gate.open_session(claim)
        if session.status != SessionStatus.NOT_STARTED.value:
            raise StatusConflict(current_status=session.status, expected_status=SessionStatus.NOT_STARTED.value)
        if session.consent:
            return session
        return await self.store.update_session_fields(session, consent=True, consent_at=self.clock())

    async def create_session(self, token: Optional[str], consent: Optional[bool],
                             precheck_passed: Optional[bool]) -> ExamSession:
        """not_started -> setup: requires consent and a passed precheck, draws the questions."""
        if not token or not consent or not precheck_passed:
            raise InvalidRequest(required=["token", "consent", "precheck_passed"])

        claim, _ = await self.gate.admit(token)
        session = await self.gate.open_session(claim)
        if session.status not in (SessionStatus.NOT_STARTED.value, SessionStatus.PRECHECK.value):
            raise StatusConflict(current_status=session.status, expected_status=SessionStatus.NOT_STARTED.value)

        bank = await self.store.list_questions()
        questions = draw_questions(bank, settings.questions_per_session, rng=self.rng)

        now = self.clock()
        return await self.machine.transition(
            session,
            SessionStatus.SETUP,
            fields={
                "consent": True,
                "consent_at": session.consent_at or now,
                "precheck_passed": True,
                "precheck_at": now,
            },
            new_answers=[
                {
                    "position": position,
                    "question_id": question.id,
                    "question_text": question.question_text,
                    "hint_used": False,
                }
                for position, question in enumerate(questions, start=1)
            ],
        )

    async def start_session(self, session_id: Optional[str]) -> ExamSession:
        """setup -> in_progress."""
        if not session_id:
            raise InvalidRequest(required=["session_id"])
        session = await self.store.require_session(session_id)
        started = await self.machine.transition(
            session,
            SessionStatus.IN_PROGRESS,
            expected=SessionStatus.SETUP,
            fields={"started_at": self.clock()},
        )
        await self.store.update_roster_status(started.student_id_hash, SessionStatus.IN_PROGRESS.value)
        return started

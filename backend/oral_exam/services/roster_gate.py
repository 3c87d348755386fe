import logging
from datetime import datetime, timedelta
from typing import Callable, Tuple

from ..core.config import settings
from ..core.exceptions import AlreadyCompleted, NotInRoster, OutsideTimeWindow
from ..core.security import decode_magic_link_token
from ..models.roster import RosterEntry
from ..models.session import ExamSession
from ..schemas.auth import IdentityClaim, StudentInfo, VerifyTokenResponse
from ..utils.timezone import utc_now
from .session_store import SessionStore
from .state_machine import SessionStatus

logger = logging.getLogger(__name__)


class RosterGate:
    """Admits a magic-link holder: token, roster membership, attempt status, time window."""

    def __init__(self, store: SessionStore, clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.clock = clock

    @staticmethod
    def window_opens_at(claim: IdentityClaim) -> datetime:
        return claim.slot_start - timedelta(minutes=settings.slot_prep_buffer_minutes)

    async def admit(self, token: str) -> Tuple[IdentityClaim, RosterEntry]:
        claim = decode_magic_link_token(token, clock=self.clock)

        entry = await self.store.get_roster_entry(claim.student_id_hash)
        if entry is None:
            logger.warning(f"Token for {claim.student_id_hash[:8]} is not in the roster")
            raise NotInRoster()

        if entry.attempt_status == SessionStatus.COMPLETED.value:
            raise AlreadyCompleted()

        now = self.clock()
        if now < self.window_opens_at(claim) or now > claim.slot_end:
            raise OutsideTimeWindow()

        return claim, entry

    async def open_session(self, claim: IdentityClaim) -> ExamSession:
        """The student's open session, created on first admission."""
        session = await self.store.get_open_session_for_student(claim.student_id_hash)
        if session is None:
            session = await self.store.create_session(claim)
        return session

    async def verify(self, token: str) -> VerifyTokenResponse:
        claim, _ = await self.admit(token)
        session = await self.open_session(claim)
        return VerifyTokenResponse(
            valid=True,
            student=StudentInfo(**claim.model_dump(exclude={"issued_at", "expires_at"})),
            session_id=session.id,
            status=session.status,
            can_start=self.clock() >= self.window_opens_at(claim),
        )

import logging
from datetime import datetime
from typing import Callable, Optional, Tuple

from ..core.config import settings
from ..core.exceptions import EmailAlreadySent, InvalidRequest, NotificationFailed, ProviderError, StatusConflict
from ..utils import email_templates
from ..utils.mail_service import MailService
from ..utils.timezone import to_iso, utc_now
from .session_store import SessionStore
from .state_machine import SessionStatus

logger = logging.getLogger(__name__)


class NotificationService:
    """
    One-shot result mail for a completed session.

    ``email_sent_at`` is claimed before sending and released again if the
    instructor mail fails, so a second call can never send a duplicate.
    """

    def __init__(self, store: SessionStore, mailer: MailService, clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.mailer = mailer
        self.clock = clock

    async def notify(self, session_id: Optional[str]) -> Tuple[str, datetime]:
        if not session_id:
            raise InvalidRequest(required=["session_id"])
        session = await self.store.require_session(session_id)
        if session.status != SessionStatus.COMPLETED.value:
            raise StatusConflict(
                "Session must be completed before sending notification",
                current_status=session.status,
                expected_status=SessionStatus.COMPLETED.value,
            )
        if session.email_sent_at is not None:
            raise EmailAlreadySent(sent_at=to_iso(session.email_sent_at))

        sent_at = self.clock()
        if not await self.store.claim_email_slot(session.id, sent_at):
            current = await self.store.require_session(session.id)
            if current.status != SessionStatus.COMPLETED.value:
                raise StatusConflict(current_status=current.status, expected_status=SessionStatus.COMPLETED.value)
            raise EmailAlreadySent(sent_at=to_iso(current.email_sent_at))

        try:
            await self.mailer.send_html(
                settings.instructor_email,
                email_templates.instructor_subject(session),
                email_templates.render_instructor_email(session),
            )
        except ProviderError as e:
            logger.error(f"session {session.id}: instructor email failed: {e}", exc_info=True)
            await self.store.release_email_slot(session.id, sent_at)
            raise NotificationFailed(details=str(e)) from e

        try:
            await self.mailer.send_html(
                session.email,
                email_templates.student_subject(session),
                email_templates.render_student_email(session),
            )
        except ProviderError as e:
            logger.warning(f"session {session.id}: student email failed (non-blocking): {e}")

        return settings.instructor_email, sent_at

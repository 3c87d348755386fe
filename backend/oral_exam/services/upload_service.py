import logging
from datetime import datetime
from typing import Callable, Dict, Optional

from ..core.config import settings
from ..core.exceptions import InvalidRequest, ProviderError, StatusConflict, StorageError
from ..models.session import ExamSession
from ..utils.storage import LocalRecordingStorage
from ..utils.timezone import utc_now
from .session_store import SessionStore
from .state_machine import SessionStateMachine, SessionStatus

logger = logging.getLogger(__name__)


class UploadService:
    """Answer recordings: per-question upload while in progress, then finalize."""

    def __init__(self, store: SessionStore, storage: LocalRecordingStorage,
                 clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.storage = storage
        self.clock = clock
        self.machine = SessionStateMachine(store)

    async def upload_chunk(
        self,
        session_id: Optional[str],
        question_id: Optional[int],
        chunk_type: Optional[str],
        hint_used: bool,
        data: Optional[bytes],
    ) -> Dict:
        if not session_id or question_id is None or data is None:
            raise InvalidRequest(required=["session_id", "question_id", "file"])
        if len(data) > settings.max_upload_size:
            raise InvalidRequest(
                "File too large",
                size_bytes=len(data),
                max_size_bytes=settings.max_upload_size,
            )
        chunk_type = chunk_type or "answer"

        session = await self.store.require_session(session_id)
        if session.status != SessionStatus.IN_PROGRESS.value:
            raise StatusConflict(current_status=session.status, expected_status=SessionStatus.IN_PROGRESS.value)

        answer = next((a for a in session.answers if a.question_id == question_id), None)
        if answer is None:
            raise InvalidRequest(
                "Question does not belong to this session",
                question_id=question_id,
            )

        try:
            stored = await self.storage.upload(session.id, answer.position, chunk_type, data)
        except ProviderError as e:
            logger.error(f"session {session.id}: upload of q{answer.position} failed: {e}", exc_info=True)
            raise StorageError() from e

        await self.store.write(
            session.id,
            expected_version=session.version,
            expected_status=SessionStatus.IN_PROGRESS.value,
            answers={answer.position: {"hint_used": bool(hint_used)}},
        )

        return {
            "chunk_id": f"chunk-{answer.position}-{chunk_type}",
            "size_mb": round(len(data) / (1024 * 1024), 2),
            "drive_link": stored["link"],
        }

    async def finalize(self, session_id: Optional[str]) -> ExamSession:
        """in_progress -> uploading; stamps ended_at, duration and the folder link."""
        if not session_id:
            raise InvalidRequest(required=["session_id"])
        session = await self.store.require_session(session_id)

        ended_at = self.clock()
        duration = 0.0
        if session.started_at is not None:
            duration = round((ended_at - session.started_at).total_seconds() / 60, 2)

        return await self.machine.transition(
            session,
            SessionStatus.UPLOADING,
            expected=SessionStatus.IN_PROGRESS,
            fields={
                "ended_at": ended_at,
                "duration_minutes": duration,
                "video_link": self.storage.folder_link(session.id),
            },
        )

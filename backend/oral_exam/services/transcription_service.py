import asyncio
import logging
from typing import Dict, List, Optional, Tuple

from ..core.exceptions import (
    ExamError,
    InvalidRequest,
    NoMediaFound,
    ProviderError,
    SessionFinalized,
    StageFailed,
    StatusConflict,
    StorageError,
)
from ..models.session import ExamSession
from ..utils.audio_service import AudioService
from ..utils.storage import LocalRecordingStorage
from .session_store import SessionStore
from .state_machine import SessionStateMachine, SessionStatus

logger = logging.getLogger(__name__)

TRANSCRIPTION_FAILED_SENTINEL = "[שגיאה בתמלול - נדרשת סקירה ידנית]"


class TranscriptionService:
    """
    uploading -> transcribing.

    A question whose recording is missing or fails to transcribe gets
    TRANSCRIPTION_FAILED_SENTINEL and the stage carries on. If no question
    could be transcribed at all the session goes back to ``uploading``.
    """

    def __init__(self, store: SessionStore, storage: LocalRecordingStorage, transcriber: AudioService):
        self.store = store
        self.storage = storage
        self.transcriber = transcriber
        self.machine = SessionStateMachine(store)

    async def transcribe(self, session_id: Optional[str]) -> ExamSession:
        if not session_id:
            raise InvalidRequest(required=["session_id"])
        session = await self.store.require_session(session_id)
        session_id = session.id
        if session.finalized:
            raise SessionFinalized(session_id=session_id)
        if session.status != SessionStatus.UPLOADING.value:
            raise StatusConflict(current_status=session.status, expected_status=SessionStatus.UPLOADING.value)

        try:
            files = await self.storage.list_session_files(session_id)
        except ProviderError as e:
            raise StorageError("Failed to list recordings") from e
        if not files:
            raise NoMediaFound(session_id=session_id)

        # Latest recording per position wins
        latest: Dict[int, dict] = {}
        for stored in files:
            latest[stored["position"]] = stored

        session = await self.machine.transition(session, SessionStatus.TRANSCRIBING, expected=SessionStatus.UPLOADING)

        try:
            positions = [answer.position for answer in session.answers]
            results = await asyncio.gather(
                *(self._transcribe_one(session_id, position, latest.get(position)) for position in positions)
            )
            if not any(ok for _, ok in results):
                raise ProviderError("No question could be transcribed")

            return await self.store.write(
                session_id,
                expected_version=session.version,
                expected_status=SessionStatus.TRANSCRIBING.value,
                answers={
                    position: {"transcript": text}
                    for position, (text, _) in zip(positions, results)
                },
            )
        except ExamError:
            await self.machine.rollback(session_id, SessionStatus.TRANSCRIBING)
            raise
        except Exception as e:
            logger.error(f"session {session_id}: transcription stage failed: {e}", exc_info=True)
            await self.machine.rollback(session_id, SessionStatus.TRANSCRIBING)
            raise StageFailed(
                "Transcription failed",
                rolled_back_to=SessionStatus.UPLOADING.value,
            ) from e

    async def _transcribe_one(self, session_id: str, position: int, stored: Optional[dict]) -> Tuple[str, bool]:
        if stored is None:
            logger.warning(f"session {session_id}: no recording for q{position}, using sentinel")
            return TRANSCRIPTION_FAILED_SENTINEL, False
        try:
            data = await self.storage.download(stored["file_id"])
            text = await self.transcriber.transcribe(data, stored["name"])
        except ProviderError as e:
            logger.warning(f"session {session_id}: transcription of q{position} failed, using sentinel: {e}")
            return TRANSCRIPTION_FAILED_SENTINEL, False
        return text, True


def transcripts_by_question(session: ExamSession) -> Dict[str, str]:
    return {f"q{answer.position}": answer.transcript or "" for answer in session.answers}


def positions_without_transcript(session: ExamSession) -> List[int]:
    return [answer.position for answer in session.answers if not answer.transcript]

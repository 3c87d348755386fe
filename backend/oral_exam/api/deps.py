from datetime import datetime
from typing import Callable, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_async_db
from ..core.exceptions import AdminUnauthorized
from ..core.security import verify_admin_token
from ..services.session_store import SessionStore
from ..utils.audio_service import AudioService, audio_service
from ..utils.mail_service import MailService, mail_service
from ..utils.openai_service import OpenAIService, openai_service
from ..utils.storage import LocalRecordingStorage, recording_storage
from ..utils.timezone import utc_now

bearer_scheme = HTTPBearer(auto_error=False)


def get_store(db: AsyncSession = Depends(get_async_db)) -> SessionStore:
    return SessionStore(db)


def get_clock() -> Callable[[], datetime]:
    return utc_now


def get_storage() -> LocalRecordingStorage:
    return recording_storage


def get_transcriber() -> AudioService:
    return audio_service


def get_scorer() -> OpenAIService:
    return openai_service


def get_mailer() -> MailService:
    return mail_service


def get_current_reviewer(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    """Name of the reviewer carried by the admin bearer token."""
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        raise AdminUnauthorized()
    return verify_admin_token(credentials.credentials)

import asyncio
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import update

from ..core.celery_app import celery_app
from ..core.config import settings
from ..core.database import AsyncSessionLocal
from ..core.exceptions import ProviderError
from ..models.session import ExamSession
from ..utils.storage import LocalRecordingStorage, recording_storage
from ..utils.timezone import utc_now

logger = logging.getLogger(__name__)


@celery_app.task(name="oral_exam.tasks.maintenance.cleanup_old_recordings")
def cleanup_old_recordings():
    """Delete recordings past the retention window."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(_cleanup_recordings_internal())
    except Exception as exc:
        logger.error(f"Error in cleanup_old_recordings: {exc}")
        raise
    finally:
        loop.close()


async def _cleanup_recordings_internal(
    storage: LocalRecordingStorage = recording_storage,
    session_factory=AsyncSessionLocal,
    days: Optional[int] = None,
    now: Optional[datetime] = None,
) -> dict:
    days = settings.recording_retention_days if days is None else days
    now = now or utc_now()

    old_files = await storage.list_old_files(days, now=now)
    deleted, failed = 0, 0
    cleaned_sessions = set()
    for stored in old_files:
        try:
            if await storage.delete(stored["file_id"]):
                deleted += 1
            cleaned_sessions.add(stored["session_id"])
        except ProviderError as e:
            logger.error(f"Failed to delete {stored['name']}: {e}")
            failed += 1

    for session_id in cleaned_sessions:
        storage.remove_empty_folder(session_id)

    if cleaned_sessions:
        async with session_factory() as db:
            await db.execute(
                update(ExamSession)
                .where(ExamSession.id.in_(cleaned_sessions))
                .values(cleaned_at=now)
                .execution_options(synchronize_session=False)
            )
            await db.commit()

    logger.info(f"Recording cleanup: {deleted} deleted, {failed} failed, {len(cleaned_sessions)} sessions")
    return {
        'files_deleted': deleted,
        'files_failed': failed,
        'sessions_cleaned': len(cleaned_sessions),
    }

"""
Recording retention cleanup.
"""
from datetime import timedelta

import pytest

from oral_exam.tasks.maintenance import _cleanup_recordings_internal
from oral_exam.utils.timezone import utc_now


@pytest.mark.asyncio
async def test_cleanup_deletes_expired_recordings(exam, store, storage, session_factory):
    body = await exam.to_in_progress()
    session_id = body["session_id"]
    await exam.upload(session_id, body["questions"][0]["id"])
    await exam.upload(session_id, body["questions"][1]["id"])

    result = await _cleanup_recordings_internal(
        storage=storage,
        session_factory=session_factory,
        days=14,
        now=utc_now() + timedelta(days=15),
    )
    assert result == {"files_deleted": 2, "files_failed": 0, "sessions_cleaned": 1}
    assert await storage.list_session_files(session_id) == []

    session = await store.require_session(session_id)
    assert session.cleaned_at is not None


@pytest.mark.asyncio
async def test_cleanup_keeps_recent_recordings(exam, store, storage, session_factory):
    body = await exam.to_in_progress()
    session_id = body["session_id"]
    await exam.upload(session_id, body["questions"][0]["id"])

    result = await _cleanup_recordings_internal(
        storage=storage,
        session_factory=session_factory,
        days=14,
        now=utc_now() + timedelta(days=3),
    )
    assert result["files_deleted"] == 0
    assert len(await storage.list_session_files(session_id)) == 1
    assert (await store.require_session(session_id)).cleaned_at is None


@pytest.mark.asyncio
async def test_cleanup_with_no_recordings(storage, session_factory):
    result = await _cleanup_recordings_internal(storage=storage, session_factory=session_factory)
    assert result == {"files_deleted": 0, "files_failed": 0, "sessions_cleaned": 0}


def test_cleanup_is_scheduled_daily():
    from oral_exam.core.celery_app import celery_app
    from oral_exam.tasks.maintenance import cleanup_old_recordings

    entry = celery_app.conf.beat_schedule["cleanup-old-recordings"]
    assert entry["task"] == cleanup_old_recordings.name

"""
Post-exam pipeline: transcribe, score, notify.
"""
import pytest

from oral_exam.services.scoring_service import SCORING_FAILED_EXPLANATION
from oral_exam.services.transcription_service import TRANSCRIPTION_FAILED_SENTINEL
from oral_exam.utils.file_paths import (
    FileTypes,
    get_full_upload_path,
    get_relative_upload_path,
    recording_filename,
)

INSTRUCTOR = "instructor@example.com"


# Transcription

@pytest.mark.asyncio
async def test_transcribe_all_answers(exam, store, transcriber):
    body = await exam.to_uploading()

    response = await exam.post("/sessions/transcribe", body["session_id"])
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "transcribing"
    assert data["transcripts"] == {
        "q1": "תשובה לשאלה 1",
        "q2": "תשובה לשאלה 2",
        "q3": "תשובה לשאלה 3",
    }
    assert sorted(transcriber.calls) == [1, 2, 3]

    session = await store.require_session(body["session_id"])
    assert session.answer_at(3).transcript == "תשובה לשאלה 3"


@pytest.mark.asyncio
async def test_missing_recording_gets_sentinel(exam, transcriber):
    body = await exam.to_uploading(upload_positions=(1, 3))

    response = await exam.post("/sessions/transcribe", body["session_id"])
    assert response.status_code == 200
    transcripts = response.json()["transcripts"]
    assert transcripts["q2"] == TRANSCRIPTION_FAILED_SENTINEL
    assert transcripts["q1"] == "תשובה לשאלה 1"
    assert 2 not in transcriber.calls

    # The sentinel counts as a transcript, scoring proceeds
    scored = await exam.post("/sessions/score", body["session_id"])
    assert scored.status_code == 200
    assert scored.json()["status"] == "completed"


@pytest.mark.asyncio
async def test_failed_transcription_gets_sentinel(exam, transcriber):
    transcriber.fail_positions = {1}
    body = await exam.to_uploading()

    response = await exam.post("/sessions/transcribe", body["session_id"])
    assert response.status_code == 200
    assert response.json()["transcripts"]["q1"] == TRANSCRIPTION_FAILED_SENTINEL


@pytest.mark.asyncio
async def test_transcribe_without_media(exam, store):
    body = await exam.to_uploading(upload_positions=())

    response = await exam.post("/sessions/transcribe", body["session_id"])
    assert response.status_code == 400
    assert response.json()["error"] == "NO_MEDIA_FOUND"
    assert (await store.require_session(body["session_id"])).status == "uploading"


@pytest.mark.asyncio
async def test_total_transcription_failure_rolls_back(exam, store, transcriber):
    transcriber.fail_positions = {1, 2, 3}
    body = await exam.to_uploading()

    response = await exam.post("/sessions/transcribe", body["session_id"])
    assert response.status_code == 500
    data = response.json()
    assert data["error"] == "STAGE_FAILED"
    assert data["rolled_back_to"] == "uploading"

    session = await store.require_session(body["session_id"])
    assert session.status == "uploading"
    assert all(answer.transcript is None for answer in session.answers)

    # Retry once the provider is back
    transcriber.fail_positions = set()
    retry = await exam.post("/sessions/transcribe", body["session_id"])
    assert retry.status_code == 200


@pytest.mark.asyncio
async def test_transcribe_requires_uploading(exam):
    body = await exam.to_in_progress()
    response = await exam.post("/sessions/transcribe", body["session_id"])
    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_STATUS"


@pytest.mark.asyncio
async def test_latest_recording_per_question_wins(exam, transcriber, storage):
    body = await exam.to_in_progress()
    session_id = body["session_id"]
    await exam.upload(session_id, body["questions"][0]["id"], data=b"first take")

    first = (await storage.list_session_files(session_id))[0]
    retake = recording_filename(session_id, 1, "answer", first["epoch_ms"] + 1000)
    with open(get_full_upload_path(get_relative_upload_path(FileTypes.RECORDINGS, session_id, retake),
                                   storage.base_dir), "wb") as f:
        f.write(b"second take")
    await exam.post("/upload/finalize", session_id)

    response = await exam.post("/sessions/transcribe", session_id)
    assert response.status_code == 200
    assert transcriber.calls == [1]
    assert transcriber.audio[1] == b"second take"


# Scoring

@pytest.mark.asyncio
async def test_score_session(exam, store, scorer):
    scorer.scores = {"תשובה לשאלה 1": 85, "תשובה לשאלה 2": 50, "תשובה לשאלה 3": 0}
    body = await exam.to_transcribing()

    response = await exam.post("/sessions/score", body["session_id"])
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "completed"
    assert data["total_correct"] == 1
    assert data["total_score_0_100"] == 45
    assert data["scores"]["q1"]["verdict"] == "correct"
    assert data["scores"]["q2"]["verdict"] == "partial"
    # The scorer claimed "correct"; the stored verdict follows the score
    assert data["scores"]["q3"]["verdict"] == "wrong"

    session = await store.require_session(body["session_id"])
    assert [a.score for a in session.answers] == [85, 50, 0]
    assert session.answer_at(2).rubric["per_question_score_0_100"] == 50
    assert session.total_score_0_100 == 45


@pytest.mark.asyncio
async def test_unscorable_question_gets_zero_rubric(exam, store, scorer):
    scorer.fail_on = {"תשובה לשאלה 2"}
    body = await exam.to_transcribing()

    response = await exam.post("/sessions/score", body["session_id"])
    assert response.status_code == 200
    data = response.json()
    assert data["scores"]["q2"]["per_question_score_0_100"] == 0
    assert data["scores"]["q2"]["verdict"] == "wrong"
    assert data["scores"]["q2"]["short_explanation_he"] == SCORING_FAILED_EXPLANATION
    assert data["total_correct"] == 2
    assert data["total_score_0_100"] == 57


@pytest.mark.asyncio
async def test_scoring_crash_rolls_back(exam, store, scorer):
    scorer.crash = True
    body = await exam.to_transcribing()

    response = await exam.post("/sessions/score", body["session_id"])
    assert response.status_code == 500
    assert response.json()["rolled_back_to"] == "transcribing"

    session = await store.require_session(body["session_id"])
    assert session.status == "transcribing"
    assert session.total_score_0_100 is None
    assert all(answer.score is None for answer in session.answers)

    scorer.crash = False
    retry = await exam.post("/sessions/score", body["session_id"])
    assert retry.status_code == 200


@pytest.mark.asyncio
async def test_finalized_session_is_not_rescored(exam, store):
    body = await exam.to_transcribing()
    session = await store.require_session(body["session_id"])
    await store.write(session.id, expected_version=session.version, fields={"finalized": True})

    response = await exam.post("/sessions/score", body["session_id"])
    assert response.status_code == 400
    assert response.json()["error"] == "SESSION_FINALIZED"

    session = await store.require_session(body["session_id"])
    assert session.status == "transcribing"
    assert session.total_score_0_100 is None
    assert all(answer.score is None for answer in session.answers)


@pytest.mark.asyncio
async def test_finalized_session_is_not_retranscribed(exam, store):
    body = await exam.to_uploading()
    session = await store.require_session(body["session_id"])
    await store.write(session.id, expected_version=session.version, fields={"finalized": True})

    response = await exam.post("/sessions/transcribe", body["session_id"])
    assert response.status_code == 400
    assert response.json()["error"] == "SESSION_FINALIZED"
    assert (await store.require_session(body["session_id"])).status == "uploading"


@pytest.mark.asyncio
async def test_score_requires_transcribing(exam):
    body = await exam.to_uploading()
    response = await exam.post("/sessions/score", body["session_id"])
    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_STATUS"


@pytest.mark.asyncio
async def test_completed_student_cannot_reenter(exam, store):
    body = await exam.to_completed()

    session = await store.require_session(body["session_id"])
    assert session.active_key is None
    entry = await store.get_roster_entry(session.student_id_hash)
    assert entry.attempt_status == "completed"

    response = await exam.verify(exam.token())
    assert response.status_code == 403
    assert response.json()["error"] == "ALREADY_COMPLETED"


# Notification

@pytest.mark.asyncio
async def test_notify_sends_once(exam, store, mailer, clock):
    body = await exam.to_completed()

    response = await exam.post("/sessions/notify", body["session_id"])
    assert response.status_code == 200
    data = response.json()
    assert data["email_sent_to"] == INSTRUCTOR
    assert [mail["to"] for mail in mailer.sent] == [INSTRUCTOR, "dana@student.example.com"]
    assert "דנה" in mailer.sent[0]["subject"]

    session = await store.require_session(body["session_id"])
    assert session.email_sent_at == clock()

    again = await exam.post("/sessions/notify", body["session_id"])
    assert again.status_code == 400
    assert again.json()["error"] == "EMAIL_ALREADY_SENT"
    assert "sent_at" in again.json()
    assert len(mailer.sent) == 2


@pytest.mark.asyncio
async def test_instructor_mail_failure_releases_slot(exam, store, mailer):
    mailer.fail_for = {INSTRUCTOR}
    body = await exam.to_completed()

    response = await exam.post("/sessions/notify", body["session_id"])
    assert response.status_code == 500
    assert response.json()["error"] == "NOTIFICATION_FAILED"
    assert (await store.require_session(body["session_id"])).email_sent_at is None
    assert mailer.sent == []

    mailer.fail_for = set()
    retry = await exam.post("/sessions/notify", body["session_id"])
    assert retry.status_code == 200
    assert len(mailer.sent) == 2


@pytest.mark.asyncio
async def test_student_mail_failure_is_not_fatal(exam, store, mailer):
    mailer.fail_for = {"dana@student.example.com"}
    body = await exam.to_completed()

    response = await exam.post("/sessions/notify", body["session_id"])
    assert response.status_code == 200
    assert [mail["to"] for mail in mailer.sent] == [INSTRUCTOR]
    assert (await store.require_session(body["session_id"])).email_sent_at is not None


@pytest.mark.asyncio
async def test_notify_requires_completed(exam, mailer):
    body = await exam.to_transcribing()
    response = await exam.post("/sessions/notify", body["session_id"])
    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_STATUS"
    assert mailer.sent == []

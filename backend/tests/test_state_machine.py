"""
Transition table, question draw and optimistic concurrency of the session store.
"""
import random
from datetime import datetime, timedelta

import pytest

from oral_exam.core.exceptions import ConcurrentModification, NotEnoughQuestions, StatusConflict
from oral_exam.core.security import hash_student_id
from oral_exam.models.question import Question
from oral_exam.schemas.auth import IdentityClaim
from oral_exam.services.state_machine import (
    SessionStateMachine,
    SessionStatus,
    can_transition,
    draw_questions,
    is_terminal,
)


def make_claim(identifier: str = "123456789") -> IdentityClaim:
    now = datetime(2025, 11, 20, 14, 0)
    return IdentityClaim(
        student_id_hash=hash_student_id(identifier),
        id_last4=identifier[-4:],
        first_name="יוסי",
        last_name="לוי",
        email="yossi@student.example.com",
        slot_start=now,
        slot_end=now + timedelta(hours=1),
        issued_at=now,
        expires_at=now + timedelta(days=7),
    )


@pytest.mark.parametrize("current, target", [
    ("not_started", "setup"),
    ("precheck", "setup"),
    ("setup", "in_progress"),
    ("in_progress", "uploading"),
    ("uploading", "transcribing"),
    ("transcribing", "scoring"),
    ("scoring", "completed"),
    ("transcribing", "uploading"),
    ("scoring", "transcribing"),
    ("in_progress", "aborted"),
    ("scoring", "expired"),
])
def test_allowed_transitions(current, target):
    assert can_transition(current, target)


@pytest.mark.parametrize("current, target", [
    ("not_started", "in_progress"),
    ("setup", "completed"),
    ("uploading", "scoring"),
    ("completed", "scoring"),
    ("completed", "aborted"),
    ("aborted", "setup"),
    ("expired", "in_progress"),
    ("uploading", "in_progress"),
])
def test_forbidden_transitions(current, target):
    assert not can_transition(current, target)


def test_terminal_statuses():
    assert is_terminal("completed")
    assert is_terminal("aborted")
    assert is_terminal("expired")
    assert not is_terminal("scoring")


def test_draw_questions_is_without_replacement():
    bank = [Question(id=i, question_text=f"q{i}") for i in range(1, 11)]
    for seed in range(20):
        drawn = draw_questions(bank, 3, rng=random.Random(seed))
        assert len(drawn) == 3
        assert len({q.id for q in drawn}) == 3


def test_draw_questions_requires_enough_questions():
    bank = [Question(id=1, question_text="q1"), Question(id=2, question_text="q2")]
    with pytest.raises(NotEnoughQuestions) as exc_info:
        draw_questions(bank, 3)
    assert exc_info.value.context == {"available": 2, "required": 3}


@pytest.mark.asyncio
async def test_one_open_session_per_student(store):
    first = await store.create_session(make_claim())
    second = await store.create_session(make_claim())
    assert second.id == first.id

    other = await store.create_session(make_claim("555555555"))
    assert other.id != first.id


@pytest.mark.asyncio
async def test_closed_session_frees_the_student(store):
    first = await store.create_session(make_claim())
    await SessionStateMachine(store).close(first, SessionStatus.ABORTED, "network lost")

    second = await store.create_session(make_claim())
    assert second.id != first.id
    reloaded = await store.get_session(first.id)
    assert reloaded.active_key is None
    assert reloaded.notes == "network lost"


@pytest.mark.asyncio
async def test_stale_version_is_rejected(store):
    session = await store.create_session(make_claim())
    stale_version = session.version

    await store.update_session_fields(session, notes="first writer")
    with pytest.raises(ConcurrentModification):
        await store.write(session.id, expected_version=stale_version, fields={"notes": "second writer"})

    reloaded = await store.get_session(session.id)
    assert reloaded.notes == "first writer"
    assert reloaded.version == stale_version + 1


@pytest.mark.asyncio
async def test_compare_and_set_reports_current_status(store):
    session = await store.create_session(make_claim())
    with pytest.raises(StatusConflict) as exc_info:
        await store.compare_and_set_status(session.id, "uploading", "transcribing")
    assert exc_info.value.context["current_status"] == "not_started"
    assert exc_info.value.context["expected_status"] == "uploading"
    assert (await store.get_session(session.id)).status == "not_started"


@pytest.mark.asyncio
async def test_second_transition_from_same_read_loses(store):
    session = await store.create_session(make_claim())
    machine = SessionStateMachine(store)
    await machine.transition(session, SessionStatus.SETUP)

    # A writer that read the session before the first transition landed
    with pytest.raises(StatusConflict):
        await store.write(
            session.id,
            expected_version=1,
            expected_status="not_started",
            fields={"status": "setup"},
        )
    assert (await store.get_session(session.id)).version == 2


@pytest.mark.asyncio
async def test_illegal_transition_does_not_write(store):
    session = await store.create_session(make_claim())
    with pytest.raises(StatusConflict):
        await SessionStateMachine(store).transition(session, SessionStatus.COMPLETED)
    reloaded = await store.get_session(session.id)
    assert reloaded.status == "not_started"
    assert reloaded.version == 1


@pytest.mark.asyncio
async def test_closing_a_terminal_session_is_rejected(store):
    session = await store.create_session(make_claim())
    machine = SessionStateMachine(store)
    expired = await machine.close(session, SessionStatus.EXPIRED)
    with pytest.raises(StatusConflict):
        await machine.close(expired, SessionStatus.ABORTED)

"""
Oral exam API - test configuration.

In-memory SQLite per test, fake collaborators behind the FastAPI
dependency providers and a clock the tests can move.
"""
import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("INSTRUCTOR_EMAIL", "instructor@example.com")

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta
from typing import Dict, Optional, Set

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from oral_exam.api import deps
from oral_exam.core.database import Base, get_async_db
from oral_exam.core.exceptions import ProviderError
from oral_exam.core.security import create_admin_token, create_magic_link_token, hash_student_id
from oral_exam.main import app
from oral_exam.schemas.rubric import RubricResult
from oral_exam.services.session_store import SessionStore
from oral_exam.utils.file_paths import parse_recording_filename
from oral_exam.utils.storage import LocalRecordingStorage

EXAM_NOW = datetime(2025, 11, 20, 14, 0, 0)


class FakeClock:
    def __init__(self, now: datetime = EXAM_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeTranscriber:
    """Returns ``texts[position]``; positions in ``fail_positions`` raise ProviderError."""

    def __init__(self):
        self.texts: Dict[int, str] = {}
        self.fail_positions: Set[int] = set()
        self.calls = []
        self.audio: Dict[int, bytes] = {}

    async def transcribe(self, audio_data: bytes, filename: str = "audio.webm") -> str:
        position = parse_recording_filename(filename)["position"]
        self.calls.append(position)
        self.audio[position] = audio_data
        if position in self.fail_positions:
            raise ProviderError(f"transcription of q{position} failed")
        return self.texts.get(position, f"תשובה לשאלה {position}")


class FakeScorer:
    """Scores by transcript; ``fail_on`` raises ProviderError, ``crash`` breaks the stage."""

    def __init__(self):
        self.scores: Dict[str, int] = {}
        self.default_score = 85
        self.fail_on: Set[str] = set()
        self.crash = False
        self.calls = []

    async def score_answer(self, question: str, sample_answer: str, transcript: str) -> RubricResult:
        self.calls.append(transcript)
        if self.crash:
            raise RuntimeError("scorer exploded")
        if transcript in self.fail_on:
            raise ProviderError("scorer unavailable")
        score = self.scores.get(transcript, self.default_score)
        return RubricResult(
            accuracy=score / 100,
            structure=score / 100,
            terminology=score / 100,
            logic=score / 100,
            alignment=score / 100,
            per_question_score_0_100=score,
            verdict="correct",
            short_explanation_he="הסבר",
        )


class FakeMailer:
    def __init__(self):
        self.sent = []
        self.fail_for: Set[str] = set()

    async def send_html(self, to: str, subject: str, html_body: str) -> None:
        if to in self.fail_for:
            raise ProviderError(f"cannot deliver to {to}")
        self.sent.append({"to": to, "subject": subject, "html": html_body})


@pytest_asyncio.fixture(scope="function")
async def engine():
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(db_session) -> SessionStore:
    return SessionStore(db_session)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage(tmp_path) -> LocalRecordingStorage:
    return LocalRecordingStorage(base_dir=str(tmp_path), base_url="http://files.test/recordings")


@pytest.fixture
def transcriber() -> FakeTranscriber:
    return FakeTranscriber()


@pytest.fixture
def scorer() -> FakeScorer:
    return FakeScorer()


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest_asyncio.fixture(scope="function")
async def client(db_session, clock, storage, transcriber, scorer, mailer) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_async_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_async_db] = override_get_async_db
    app.dependency_overrides[deps.get_clock] = lambda: clock
    app.dependency_overrides[deps.get_storage] = lambda: storage
    app.dependency_overrides[deps.get_transcriber] = lambda: transcriber
    app.dependency_overrides[deps.get_scorer] = lambda: scorer
    app.dependency_overrides[deps.get_mailer] = lambda: mailer

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_admin_token('Dr. Cohen')}"}


class ExamDriver:
    """Walks a student through the exam over HTTP."""

    def __init__(self, client: AsyncClient, store: SessionStore, clock: FakeClock):
        self.client = client
        self.store = store
        self.clock = clock

    def student(self, **overrides) -> dict:
        student = {
            "student_id_hash": hash_student_id("123456789"),
            "id_last4": "6789",
            "first_name": "דנה",
            "last_name": "כהן",
            "email": "dana@student.example.com",
            "slot_start": self.clock() + timedelta(minutes=5),
            "slot_end": self.clock() + timedelta(hours=1),
        }
        student.update(overrides)
        return student

    def token(self, student: Optional[dict] = None, **kwargs) -> str:
        return create_magic_link_token(student or self.student(), issued_at=self.clock(), **kwargs)

    async def enroll(self, student: Optional[dict] = None, attempt_status: str = "not_started") -> dict:
        student = student or self.student()
        await self.store.upsert_roster_entry(
            student["student_id_hash"],
            id_last4=student["id_last4"],
            first_name=student["first_name"],
            last_name=student["last_name"],
            email=student["email"],
            slot_start=student["slot_start"],
            slot_end=student["slot_end"],
            attempt_status=attempt_status,
        )
        return student

    async def seed_questions(self, count: int = 3) -> None:
        for i in range(1, count + 1):
            await self.store.add_question(
                question_text=f"שאלה {i}",
                sample_answer=f"תשובה לדוגמה {i}",
                question_id=i,
            )

    async def verify(self, token: str):
        return await self.client.post("/api/v1/auth/verify", json={"token": token})

    async def create(self, token: str):
        return await self.client.post(
            "/api/v1/sessions/create",
            json={"token": token, "consent": True, "precheck_passed": True},
        )

    async def post(self, path: str, session_id: str):
        return await self.client.post(f"/api/v1{path}", json={"session_id": session_id})

    async def upload(self, session_id: str, question_id: int, data: bytes = b"\x1a\x45\xdf\xa3" + b"0" * 2048,
                     hint_used: bool = False):
        return await self.client.post(
            "/api/v1/upload/chunk",
            data={
                "session_id": session_id,
                "question_id": str(question_id),
                "chunk_type": "answer",
                "hint_used": "true" if hint_used else "false",
            },
            files={"file": ("answer.webm", data, "video/webm")},
        )

    async def to_in_progress(self) -> dict:
        await self.seed_questions()
        await self.enroll()
        created = await self.create(self.token())
        assert created.status_code == 200, created.text
        body = created.json()
        started = await self.post("/sessions/start", body["session_id"])
        assert started.status_code == 200, started.text
        return body

    async def to_uploading(self, upload_positions=(1, 2, 3)) -> dict:
        body = await self.to_in_progress()
        for position, question in enumerate(body["questions"], start=1):
            if position in upload_positions:
                uploaded = await self.upload(body["session_id"], question["id"])
                assert uploaded.status_code == 200, uploaded.text
        self.clock.advance(minutes=12)
        finalized = await self.post("/upload/finalize", body["session_id"])
        assert finalized.status_code == 200, finalized.text
        return body

    async def to_transcribing(self, upload_positions=(1, 2, 3)) -> dict:
        body = await self.to_uploading(upload_positions)
        transcribed = await self.post("/sessions/transcribe", body["session_id"])
        assert transcribed.status_code == 200, transcribed.text
        return body

    async def to_completed(self) -> dict:
        body = await self.to_transcribing()
        scored = await self.post("/sessions/score", body["session_id"])
        assert scored.status_code == 200, scored.text
        return body


@pytest.fixture
def exam(client, store, clock) -> ExamDriver:
    return ExamDriver(client, store, clock)

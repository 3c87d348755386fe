import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from ..core.config import settings
from ..core.exceptions import InvalidRequest, SessionFinalized, StatusConflict
from ..core.security import build_magic_link, create_magic_link_token, hash_student_id
from ..models.session import ExamSession
from ..schemas.auth import MagicLinkRequest, MagicLinkResponse
from ..schemas.rubric import verdict_for_score
from ..schemas.session import AnswerDetail, SessionDetail, SessionPatch, SessionSummary
from ..utils.timezone import to_naive_utc, utc_now
from .scoring_service import compute_totals
from .session_store import SessionStore
from .state_machine import SessionStateMachine, SessionStatus

logger = logging.getLogger(__name__)

QUESTION_POSITIONS = (1, 2, 3)


def to_summary(session: ExamSession) -> SessionSummary:
    return SessionSummary(
        session_id=session.id,
        student_name=f"{session.first_name} {session.last_name}",
        id_last4=session.id_last4,
        date=session.started_at or session.created_at,
        total_score=session.total_score_0_100,
        status=session.status,
        finalized=session.finalized,
    )


def to_detail(session: ExamSession) -> SessionDetail:
    return SessionDetail(
        session_id=session.id,
        student_id_hash=session.student_id_hash,
        id_last4=session.id_last4,
        first_name=session.first_name,
        last_name=session.last_name,
        email=session.email,
        slot_start=session.slot_start,
        slot_end=session.slot_end,
        status=session.status,
        consent=session.consent,
        consent_at=session.consent_at,
        precheck_passed=session.precheck_passed,
        precheck_at=session.precheck_at,
        started_at=session.started_at,
        ended_at=session.ended_at,
        duration_minutes=session.duration_minutes,
        video_link=session.video_link,
        answers=[AnswerDetail.model_validate(answer) for answer in session.answers],
        total_correct=session.total_correct,
        total_score_0_100=session.total_score_0_100,
        finalized=session.finalized,
        reviewed_by=session.reviewed_by,
        notes=session.notes,
        email_sent_at=session.email_sent_at,
    )


def require_completed(session: ExamSession) -> None:
    """Review only touches sessions the pipeline is done with."""
    if session.status != SessionStatus.COMPLETED.value:
        raise StatusConflict(
            "Session is not completed",
            current_status=session.status,
            expected_status=SessionStatus.COMPLETED.value,
        )


class AdminService:
    def __init__(self, store: SessionStore, clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.clock = clock
        self.machine = SessionStateMachine(store)

    async def list_sessions(self) -> List[SessionSummary]:
        return [to_summary(session) for session in await self.store.list_sessions()]

    async def get_session(self, session_id: str) -> SessionDetail:
        return to_detail(await self.store.require_session(session_id))

    async def patch_session(self, session_id: str, patch: SessionPatch) -> SessionDetail:
        """
        Override scores, verdicts and notes of a completed, unfinalized session.

        A score without a verdict gets its verdict re-derived; a verdict that
        does not match the (new or stored) score is rejected. Totals are
        recomputed whenever an answer changes. The stored rubric follows the
        overridden score and verdict.
        """
        session = await self.store.require_session(session_id)
        if session.finalized:
            raise SessionFinalized(session_id=session.id)
        require_completed(session)

        data = patch.model_dump(exclude_unset=True)
        if not data:
            raise InvalidRequest("No fields to update")

        answers: Dict[int, Dict] = {}
        for position in QUESTION_POSITIONS:
            score = data.get(f"q{position}_score")
            verdict = data.get(f"q{position}_verdict")
            if score is None and verdict is None:
                continue

            answer = session.answer_at(position)
            if answer is None:
                raise InvalidRequest(f"Session has no question {position}")

            if score is not None and not 0 <= score <= 100:
                raise InvalidRequest("Score must be between 0 and 100", question=f"q{position}", score=score)
            effective_score = score if score is not None else answer.score
            if effective_score is None:
                raise InvalidRequest(f"q{position} has no score to judge the verdict against")

            expected = verdict_for_score(effective_score)
            if verdict is not None and verdict != expected:
                raise InvalidRequest(
                    "Verdict does not match score",
                    question=f"q{position}",
                    score=effective_score,
                    expected_verdict=expected.value,
                )
            columns = {"score": effective_score, "verdict": expected.value}
            if answer.rubric:
                columns["rubric"] = {
                    **answer.rubric,
                    "per_question_score_0_100": effective_score,
                    "verdict": expected.value,
                }
            answers[position] = columns

        fields = {}
        if "notes" in data:
            fields["notes"] = data["notes"]
        if answers:
            merged = [
                (answers[a.position]["score"], answers[a.position]["verdict"]) if a.position in answers
                else (a.score, a.verdict)
                for a in session.answers
            ]
            fields["total_correct"], fields["total_score_0_100"] = compute_totals(merged)

        updated = await self.store.write(
            session.id,
            expected_version=session.version,
            expected_status=SessionStatus.COMPLETED.value,
            fields=fields,
            answers=answers,
        )
        logger.info(f"session {session.id}: patched {sorted(data)}")
        return to_detail(updated)

    async def finalize_session(self, session_id: str, reviewed_by: str) -> ExamSession:
        session = await self.store.require_session(session_id)
        if session.finalized:
            raise SessionFinalized("Session already finalized", session_id=session.id)
        require_completed(session)
        updated = await self.store.write(
            session.id,
            expected_version=session.version,
            expected_status=SessionStatus.COMPLETED.value,
            fields={"finalized": True, "reviewed_by": reviewed_by},
        )
        logger.info(f"session {session.id}: finalized by {reviewed_by}")
        return updated

    async def close_session(self, session_id: str, target: SessionStatus, reason: Optional[str] = None) -> ExamSession:
        session = await self.store.require_session(session_id)
        closed = await self.machine.close(session, target, reason)
        await self.store.update_roster_status(closed.student_id_hash, target.value)
        return closed

    async def generate_magic_link(self, request: MagicLinkRequest) -> MagicLinkResponse:
        required = ("first_name", "last_name", "email", "id_last4")
        missing = [field for field in required if not getattr(request, field)]
        if missing:
            raise InvalidRequest(required=missing)

        now = self.clock()
        slot_start = to_naive_utc(request.slot_start) or now
        slot_end = to_naive_utc(request.slot_end) or slot_start + timedelta(minutes=settings.default_slot_minutes)
        if slot_end <= slot_start:
            raise InvalidRequest("slot_end must be after slot_start")

        student_id_hash = hash_student_id(request.student_id or request.email)
        token = create_magic_link_token(
            {
                "student_id_hash": student_id_hash,
                "id_last4": request.id_last4,
                "first_name": request.first_name,
                "last_name": request.last_name,
                "email": request.email,
                "slot_start": slot_start,
                "slot_end": slot_end,
            },
            issued_at=now,
        )

        await self.register_student(
            student_id_hash,
            id_last4=request.id_last4,
            first_name=request.first_name,
            last_name=request.last_name,
            email=request.email,
            slot_start=slot_start,
            slot_end=slot_end,
            token_issued_at=now,
        )

        return MagicLinkResponse(
            link=build_magic_link(request.base_url or settings.app_url, token),
            student_id_hash=student_id_hash,
            slot_start=slot_start,
            slot_end=slot_end,
        )

    async def register_student(self, student_id_hash: str, **fields) -> None:
        """Upsert the roster entry; an existing attempt status is never reset."""
        fields["slot_prep_buffer_sec"] = settings.slot_prep_buffer_minutes * 60
        existing = await self.store.get_roster_entry(student_id_hash)
        if existing is None:
            fields["attempt_status"] = SessionStatus.NOT_STARTED.value
        await self.store.upsert_roster_entry(student_id_hash, **fields)

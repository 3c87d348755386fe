import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import ConcurrentModification, SessionNotFound, StatusConflict
from ..models.question import Question
from ..models.roster import RosterEntry
from ..models.session import ExamSession, SessionAnswer
from ..schemas.auth import IdentityClaim

logger = logging.getLogger(__name__)


class SessionStore:
    """
    CRUD-by-key access to sessions, roster and question bank.

    Every write to a session row is a single conditional UPDATE on ``version``
    (and optionally ``status``); a writer that lost the race gets
    ``StatusConflict`` or ``ConcurrentModification`` instead of overwriting.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # Sessions

    async def get_session(self, session_id: str) -> Optional[ExamSession]:
        result = await self.db.execute(
            select(ExamSession)
            .filter(ExamSession.id == session_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def require_session(self, session_id: str) -> ExamSession:
        session = await self.get_session(session_id)
        if session is None:
            raise SessionNotFound(session_id=session_id)
        return session

    async def get_open_session_for_student(self, student_id_hash: str) -> Optional[ExamSession]:
        result = await self.db.execute(
            select(ExamSession)
            .filter(ExamSession.active_key == student_id_hash)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def list_sessions(self) -> List[ExamSession]:
        result = await self.db.execute(
            select(ExamSession).order_by(ExamSession.created_at.desc())
        )
        return list(result.scalars().all())

    async def create_session(self, claim: IdentityClaim) -> ExamSession:
        """
        Insert a new open session for the claimed student.

        If another request opened one first, the unique ``active_key`` rejects
        this insert and the winner's session is returned.
        """
        session = ExamSession(
            id=str(uuid.uuid4()),
            student_id_hash=claim.student_id_hash,
            id_last4=claim.id_last4,
            first_name=claim.first_name,
            last_name=claim.last_name,
            email=claim.email,
            slot_start=claim.slot_start,
            slot_end=claim.slot_end,
            status="not_started",
            active_key=claim.student_id_hash,
            version=1,
            consent=False,
            precheck_passed=False,
            finalized=False,
        )
        self.db.add(session)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            existing = await self.get_open_session_for_student(claim.student_id_hash)
            if existing is None:
                raise
            logger.info(f"Reusing session {existing.id} opened concurrently for {claim.student_id_hash[:8]}")
            return existing
        logger.info(f"Created session {session.id} for student {claim.student_id_hash[:8]}")
        return await self.require_session(session.id)

    async def write(
        self,
        session_id: str,
        *,
        expected_version: Optional[int] = None,
        expected_status: Optional[str] = None,
        fields: Optional[Dict[str, Any]] = None,
        answers: Optional[Dict[int, Dict[str, Any]]] = None,
        new_answers: Optional[Iterable[Dict[str, Any]]] = None,
    ) -> ExamSession:
        """
        Apply a partial update to one session in one transaction.

        ``fields`` are session columns, ``answers`` maps position -> columns
        of that answer row, ``new_answers`` are answer rows to insert.
        Columns not named are left untouched.
        """
        stmt = update(ExamSession).where(ExamSession.id == session_id)
        if expected_version is not None:
            stmt = stmt.where(ExamSession.version == expected_version)
        if expected_status is not None:
            stmt = stmt.where(ExamSession.status == expected_status)
        values = dict(fields or {})
        values["version"] = ExamSession.version + 1
        stmt = stmt.values(**values).execution_options(synchronize_session=False)

        try:
            result = await self.db.execute(stmt)
            if result.rowcount == 0:
                await self.db.rollback()
                await self._raise_lost_write(session_id, expected_status)

            for position, columns in (answers or {}).items():
                await self.db.execute(
                    update(SessionAnswer)
                    .where(SessionAnswer.session_id == session_id, SessionAnswer.position == position)
                    .values(**columns)
                    .execution_options(synchronize_session=False)
                )
            for row in new_answers or ():
                self.db.add(SessionAnswer(session_id=session_id, **row))

            await self.db.commit()
        except (SessionNotFound, StatusConflict, ConcurrentModification):
            raise
        except Exception:
            await self.db.rollback()
            raise

        return await self.require_session(session_id)

    async def _raise_lost_write(self, session_id: str, expected_status: Optional[str]):
        current = await self.get_session(session_id)
        if current is None:
            raise SessionNotFound(session_id=session_id)
        if expected_status is not None and current.status != expected_status:
            raise StatusConflict(
                current_status=current.status,
                expected_status=expected_status,
            )
        raise ConcurrentModification(session_id=session_id, current_status=current.status)

    async def compare_and_set_status(
        self,
        session_id: str,
        expected_status: str,
        new_status: str,
        expected_version: Optional[int] = None,
        **fields: Any,
    ) -> ExamSession:
        return await self.write(
            session_id,
            expected_version=expected_version,
            expected_status=expected_status,
            fields={"status": new_status, **fields},
        )

    async def update_session_fields(self, session: ExamSession, **fields: Any) -> ExamSession:
        return await self.write(session.id, expected_version=session.version, fields=fields)

    async def claim_email_slot(self, session_id: str, sent_at) -> bool:
        """Set ``email_sent_at`` only if it is unset. Returns False if already set."""
        result = await self.db.execute(
            update(ExamSession)
            .where(
                ExamSession.id == session_id,
                ExamSession.status == "completed",
                ExamSession.email_sent_at.is_(None),
            )
            .values(email_sent_at=sent_at, version=ExamSession.version + 1)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount == 1

    async def release_email_slot(self, session_id: str, sent_at) -> None:
        await self.db.execute(
            update(ExamSession)
            .where(ExamSession.id == session_id, ExamSession.email_sent_at == sent_at)
            .values(email_sent_at=None, version=ExamSession.version + 1)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

    # Roster

    async def get_roster_entry(self, student_id_hash: str) -> Optional[RosterEntry]:
        result = await self.db.execute(
            select(RosterEntry)
            .filter(RosterEntry.student_id_hash == student_id_hash)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def upsert_roster_entry(self, student_id_hash: str, **fields: Any) -> RosterEntry:
        entry = await self.get_roster_entry(student_id_hash)
        if entry is None:
            entry = RosterEntry(student_id_hash=student_id_hash, **fields)
            self.db.add(entry)
        else:
            for key, value in fields.items():
                setattr(entry, key, value)
        await self.db.commit()
        return entry

    async def update_roster_status(self, student_id_hash: str, attempt_status: str) -> bool:
        result = await self.db.execute(
            update(RosterEntry)
            .where(RosterEntry.student_id_hash == student_id_hash)
            .values(attempt_status=attempt_status)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount == 1

    # Question bank

    async def list_questions(self) -> List[Question]:
        result = await self.db.execute(select(Question).order_by(Question.id))
        return list(result.scalars().all())

    async def get_questions(self, question_ids: Iterable[int]) -> Dict[int, Question]:
        ids = list(question_ids)
        if not ids:
            return {}
        result = await self.db.execute(select(Question).filter(Question.id.in_(ids)))
        return {q.id: q for q in result.scalars().all()}

    async def add_question(self, question_text: str, sample_answer: str = "",
                           difficulty: int = 1, topic: Optional[str] = None,
                           question_id: Optional[int] = None) -> Question:
        question = Question(
            id=question_id,
            question_text=question_text,
            sample_answer=sample_answer,
            difficulty=difficulty,
            topic=topic,
        )
        self.db.add(question)
        await self.db.commit()
        return question

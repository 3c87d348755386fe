import asyncio
import logging
import math
from typing import Dict, Iterable, Optional, Tuple

from ..core.exceptions import (
    ExamError,
    InvalidRequest,
    MissingTranscripts,
    ProviderError,
    StageFailed,
    SessionFinalized,
    StatusConflict,
)
from ..models.question import Question
from ..models.session import ExamSession, SessionAnswer
from ..schemas.rubric import RubricResult, Verdict
from ..utils.openai_service import OpenAIService
from .session_store import SessionStore
from .state_machine import SessionStateMachine, SessionStatus
from .transcription_service import positions_without_transcript

logger = logging.getLogger(__name__)

SCORING_FAILED_EXPLANATION = "שגיאה בניקוד אוטומטי - נדרשת סקירה ידנית"


def compute_totals(scored: Iterable[Tuple[Optional[int], Optional[str]]]) -> Tuple[int, int]:
    """
    (total_correct, total_score_0_100) over (score, verdict) pairs.

    Unscored questions are ignored; the mean is rounded half up.
    """
    scored = [(score, verdict) for score, verdict in scored if score is not None]
    if not scored:
        return 0, 0
    total_correct = sum(1 for _, verdict in scored if verdict == Verdict.CORRECT.value)
    mean = sum(score for score, _ in scored) / len(scored)
    return total_correct, int(math.floor(mean + 0.5))


class ScoringService:
    """
    transcribing -> scoring -> completed.

    A question the scorer cannot grade gets a zero rubric and the stage
    completes. Anything else that breaks the stage returns the session to
    ``transcribing`` so the call can be retried.
    """

    def __init__(self, store: SessionStore, scorer: OpenAIService):
        self.store = store
        self.scorer = scorer
        self.machine = SessionStateMachine(store)

    async def score(self, session_id: Optional[str]) -> Tuple[ExamSession, Dict[int, RubricResult]]:
        if not session_id:
            raise InvalidRequest(required=["session_id"])
        session = await self.store.require_session(session_id)
        session_id = session.id
        if session.finalized:
            raise SessionFinalized(session_id=session_id)
        if session.status != SessionStatus.TRANSCRIBING.value:
            raise StatusConflict(current_status=session.status, expected_status=SessionStatus.TRANSCRIBING.value)

        missing = positions_without_transcript(session)
        if missing or not session.answers:
            raise MissingTranscripts(missing=[f"q{position}" for position in missing])

        session = await self.machine.transition(session, SessionStatus.SCORING, expected=SessionStatus.TRANSCRIBING)

        try:
            questions = await self.store.get_questions(answer.question_id for answer in session.answers)
            positions = [answer.position for answer in session.answers]
            results = await asyncio.gather(
                *(self._score_one(session_id, answer, questions.get(answer.question_id)) for answer in session.answers)
            )
            rubrics = dict(zip(positions, results))

            total_correct, total_score = compute_totals(
                (rubric.per_question_score_0_100, rubric.verdict.value) for rubric in rubrics.values()
            )
            completed = await self.machine.transition(
                session,
                SessionStatus.COMPLETED,
                fields={"total_correct": total_correct, "total_score_0_100": total_score},
                answers={
                    position: {
                        "score": rubric.per_question_score_0_100,
                        "verdict": rubric.verdict.value,
                        "rubric": rubric.model_dump(mode="json"),
                    }
                    for position, rubric in rubrics.items()
                },
            )
        except ExamError:
            await self.machine.rollback(session_id, SessionStatus.SCORING)
            raise
        except Exception as e:
            logger.error(f"session {session_id}: scoring stage failed: {e}", exc_info=True)
            await self.machine.rollback(session_id, SessionStatus.SCORING)
            raise StageFailed(
                "Scoring failed",
                rolled_back_to=SessionStatus.TRANSCRIBING.value,
            ) from e

        await self.store.update_roster_status(completed.student_id_hash, SessionStatus.COMPLETED.value)
        logger.info(f"session {completed.id}: scored {total_score}/100, {total_correct} correct")
        return completed, rubrics

    async def _score_one(self, session_id: str, answer: SessionAnswer, question: Optional[Question]) -> RubricResult:
        sample_answer = question.sample_answer if question is not None else ""
        try:
            return await self.scorer.score_answer(answer.question_text, sample_answer, answer.transcript)
        except ProviderError as e:
            logger.warning(f"session {session_id}: scoring of q{answer.position} failed, zero rubric: {e}")
            return RubricResult.zero(SCORING_FAILED_EXPLANATION)

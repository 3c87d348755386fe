from sqlalchemy import Column, String, DateTime, ForeignKey, Float, Text, Boolean, Integer, JSON, UniqueConstraint
from sqlalchemy.orm import relationship

from ..core.database import Base
from ..utils.timezone import utc_now


class ExamSession(Base):
    """One student's attempt. Status changes go through SessionStateMachine only."""
    __tablename__ = "exam_sessions"

    id = Column(String, primary_key=True, index=True)

    # Identity, copied from the magic-link claim and never mutated
    student_id_hash = Column(String, index=True, nullable=False)
    id_last4 = Column(String(4), nullable=False)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    slot_start = Column(DateTime, nullable=False)
    slot_end = Column(DateTime, nullable=False)

    status = Column(String, default="not_started", nullable=False, index=True)
    # student_id_hash while the session is open, NULL once closed
    active_key = Column(String, nullable=True, unique=True)
    version = Column(Integer, default=1, nullable=False)

    consent = Column(Boolean, default=False, nullable=False)
    consent_at = Column(DateTime, nullable=True)
    precheck_passed = Column(Boolean, default=False, nullable=False)
    precheck_at = Column(DateTime, nullable=True)

    started_at = Column(DateTime, nullable=True)
    ended_at = Column(DateTime, nullable=True)
    duration_minutes = Column(Float, nullable=True)
    video_link = Column(String, nullable=True)

    total_correct = Column(Integer, nullable=True)
    total_score_0_100 = Column(Integer, nullable=True)

    finalized = Column(Boolean, default=False, nullable=False)
    reviewed_by = Column(String, nullable=True)
    notes = Column(Text, nullable=True)

    email_sent_at = Column(DateTime, nullable=True)
    cleaned_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    answers = relationship(
        "SessionAnswer",
        back_populates="session",
        order_by="SessionAnswer.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def answer_at(self, position: int):
        for answer in self.answers:
            if answer.position == position:
                return answer
        return None


class SessionAnswer(Base):
    """Question slot ``position`` (1..3) of a session."""
    __tablename__ = "session_answers"
    __table_args__ = (UniqueConstraint("session_id", "position", name="uq_session_answer_position"),)

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String, ForeignKey("exam_sessions.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    question_id = Column(Integer, nullable=False)
    question_text = Column(Text, nullable=False)
    transcript = Column(Text, nullable=True)
    hint_used = Column(Boolean, default=False, nullable=False)
    score = Column(Integer, nullable=True)
    verdict = Column(String, nullable=True)
    rubric = Column(JSON, nullable=True)

    session = relationship("ExamSession", back_populates="answers")

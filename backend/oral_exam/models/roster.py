from sqlalchemy import Column, String, DateTime, Integer

from ..core.database import Base
from ..utils.timezone import utc_now


class RosterEntry(Base):
    __tablename__ = "roster"

    student_id_hash = Column(String, primary_key=True, index=True)
    id_last4 = Column(String(4), nullable=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    email = Column(String, nullable=True)
    slot_start = Column(DateTime, nullable=True)
    slot_end = Column(DateTime, nullable=True)
    slot_prep_buffer_sec = Column(Integer, default=15 * 60, nullable=False)
    attempt_status = Column(String, default="not_started", nullable=False)
    token_issued_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

from sqlalchemy import Column, String, Text, Integer

from ..core.database import Base


class Question(Base):
    """Reference data; drawn without replacement when a session enters setup."""
    __tablename__ = "questions_bank"

    id = Column(Integer, primary_key=True, index=True)
    question_text = Column(Text, nullable=False)
    sample_answer = Column(Text, nullable=False, default="")
    difficulty = Column(Integer, default=1, nullable=False)
    topic = Column(String, nullable=True)

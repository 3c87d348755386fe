from .session import ExamSession, SessionAnswer
from .roster import RosterEntry
from .question import Question

__all__ = [
    "ExamSession",
    "SessionAnswer",
    "RosterEntry",
    "Question",
]

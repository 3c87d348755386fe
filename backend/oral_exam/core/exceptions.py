"""
Error taxonomy for the exam API.

Services raise these; ``main.py`` renders them as
``{"error": code, "message": ..., **context}`` with ``status_code``.
"""
from typing import Any, Dict, Optional


class ExamError(Exception):
    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    message: str = "Internal error"

    def __init__(self, message: Optional[str] = None, **context: Any):
        self.message = message or self.message
        self.context: Dict[str, Any] = {k: v for k, v in context.items() if v is not None}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message, **self.context}


# Input validation

class InvalidRequest(ExamError):
    status_code = 400
    code = "INVALID_REQUEST"
    message = "Missing required fields"


# Identity

class TokenInvalid(ExamError):
    status_code = 401
    code = "TOKEN_INVALID"
    message = "Invalid token"


class TokenExpired(ExamError):
    status_code = 401
    code = "TOKEN_EXPIRED"
    message = "Token expired"


class OutsideTimeWindow(TokenExpired):
    status_code = 403
    message = "Outside allowed time window"


class NotInRoster(ExamError):
    status_code = 404
    code = "NOT_IN_ROSTER"
    message = "Student is not in the roster"


class AlreadyCompleted(ExamError):
    status_code = 403
    code = "ALREADY_COMPLETED"
    message = "Exam already completed"


class AdminUnauthorized(ExamError):
    status_code = 401
    code = "UNAUTHORIZED"
    message = "Unauthorized"


# Preconditions and conflicts

class SessionNotFound(ExamError):
    status_code = 404
    code = "SESSION_NOT_FOUND"
    message = "Session not found"


class StatusConflict(ExamError):
    status_code = 400
    code = "INVALID_STATUS"
    message = "Session is not in the required status"


class ConcurrentModification(ExamError):
    status_code = 409
    code = "CONCURRENT_MODIFICATION"
    message = "Session was modified by another request, reload and retry"


class SessionFinalized(ExamError):
    status_code = 400
    code = "SESSION_FINALIZED"
    message = "Session is finalized"


class EmailAlreadySent(ExamError):
    status_code = 400
    code = "EMAIL_ALREADY_SENT"
    message = "Email already sent"


class NoMediaFound(ExamError):
    status_code = 400
    code = "NO_MEDIA_FOUND"
    message = "No video files found for session"


class MissingTranscripts(ExamError):
    status_code = 400
    code = "MISSING_TRANSCRIPTS"
    message = "Missing transcripts for scoring"


# External failures

class NotEnoughQuestions(ExamError):
    status_code = 500
    code = "NOT_ENOUGH_QUESTIONS"
    message = "Not enough questions in bank"


class StorageError(ExamError):
    status_code = 500
    code = "STORAGE_ERROR"
    message = "Upload failed"


class StageFailed(ExamError):
    status_code = 500
    code = "STAGE_FAILED"
    message = "Stage failed"


class NotificationFailed(ExamError):
    status_code = 500
    code = "NOTIFICATION_FAILED"
    message = "Failed to send notification"


class ProviderError(Exception):
    """Raised by collaborator adapters (storage, speech-to-text, scorer, mail)."""

from .auth import IdentityClaim, StudentInfo, VerifyTokenRequest, VerifyTokenResponse, MagicLinkRequest, MagicLinkResponse
from .rubric import RubricResult, Verdict, verdict_for_score
from .session import (
    SessionIdRequest,
    ConsentRequest,
    ConsentResponse,
    CreateSessionRequest,
    CreateSessionResponse,
    QuestionBrief,
    StartSessionResponse,
    UploadChunkResponse,
    FinalizeUploadResponse,
    TranscribeResponse,
    ScoreResponse,
    NotifyResponse,
    SessionSummary,
    SessionListResponse,
    AnswerDetail,
    SessionDetail,
    SessionPatch,
    FinalizeSessionRequest,
    CloseSessionRequest,
    AdminAck,
)

__all__ = [
    "IdentityClaim",
    "StudentInfo",
    "VerifyTokenRequest",
    "VerifyTokenResponse",
    "MagicLinkRequest",
    "MagicLinkResponse",
    "RubricResult",
    "Verdict",
    "verdict_for_score",
    "SessionIdRequest",
    "ConsentRequest",
    "ConsentResponse",
    "CreateSessionRequest",
    "CreateSessionResponse",
    "QuestionBrief",
    "StartSessionResponse",
    "UploadChunkResponse",
    "FinalizeUploadResponse",
    "TranscribeResponse",
    "ScoreResponse",
    "NotifyResponse",
    "SessionSummary",
    "SessionListResponse",
    "AnswerDetail",
    "SessionDetail",
    "SessionPatch",
    "FinalizeSessionRequest",
    "CloseSessionRequest",
    "AdminAck",
]

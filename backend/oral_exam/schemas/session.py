from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from .rubric import RubricResult, Verdict


class SessionIdRequest(BaseModel):
    session_id: Optional[str] = None


class ConsentRequest(BaseModel):
    token: Optional[str] = None


class ConsentResponse(BaseModel):
    success: bool = True
    session_id: str
    consent_at: datetime
    status: str


class CreateSessionRequest(BaseModel):
    token: Optional[str] = None
    consent: Optional[bool] = None
    precheck_passed: Optional[bool] = None


class QuestionBrief(BaseModel):
    id: int
    text: str


class CreateSessionResponse(BaseModel):
    session_id: str
    questions: List[QuestionBrief]
    status: str


class StartSessionResponse(BaseModel):
    success: bool = True
    started_at: datetime
    status: str


class UploadChunkResponse(BaseModel):
    success: bool = True
    chunk_id: str
    size_mb: float
    drive_link: str


class FinalizeUploadResponse(BaseModel):
    success: bool = True
    video_link: str
    duration_minutes: float
    status: str


class TranscribeResponse(BaseModel):
    success: bool = True
    transcripts: Dict[str, str]
    status: str


class ScoreResponse(BaseModel):
    success: bool = True
    scores: Dict[str, Optional[RubricResult]]
    total_correct: int
    total_score_0_100: int
    status: str


class NotifyResponse(BaseModel):
    success: bool = True
    email_sent_to: str
    email_sent_at: datetime


# Admin

class SessionSummary(BaseModel):
    session_id: str
    student_name: str
    id_last4: str
    date: Optional[datetime] = None
    total_score: Optional[int] = None
    status: str
    finalized: bool


class SessionListResponse(BaseModel):
    sessions: List[SessionSummary]
    count: int


class AnswerDetail(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    position: int
    question_id: int
    question_text: str
    transcript: Optional[str] = None
    hint_used: bool = False
    score: Optional[int] = None
    verdict: Optional[Verdict] = None
    rubric: Optional[RubricResult] = None


class SessionDetail(BaseModel):
    session_id: str
    student_id_hash: str
    id_last4: str
    first_name: str
    last_name: str
    email: str
    slot_start: datetime
    slot_end: datetime
    status: str
    consent: bool
    consent_at: Optional[datetime] = None
    precheck_passed: bool
    precheck_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    duration_minutes: Optional[float] = None
    video_link: Optional[str] = None
    answers: List[AnswerDetail] = []
    total_correct: Optional[int] = None
    total_score_0_100: Optional[int] = None
    finalized: bool
    reviewed_by: Optional[str] = None
    notes: Optional[str] = None
    email_sent_at: Optional[datetime] = None


class SessionPatch(BaseModel):
    """Admin override. Any subset of the fields may be sent."""
    model_config = ConfigDict(extra="forbid")

    q1_score: Optional[int] = None
    q1_verdict: Optional[Verdict] = None
    q2_score: Optional[int] = None
    q2_verdict: Optional[Verdict] = None
    q3_score: Optional[int] = None
    q3_verdict: Optional[Verdict] = None
    notes: Optional[str] = None


class FinalizeSessionRequest(BaseModel):
    reviewed_by: Optional[str] = None


class CloseSessionRequest(BaseModel):
    reason: Optional[str] = None


class AdminAck(BaseModel):
    success: bool = True
    session_id: str
    status: Optional[str] = None
    finalized: Optional[bool] = None

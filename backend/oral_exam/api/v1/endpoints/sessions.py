from fastapi import APIRouter, Depends

from ....schemas.session import (
    ConsentRequest,
    ConsentResponse,
    CreateSessionRequest,
    CreateSessionResponse,
    NotifyResponse,
    QuestionBrief,
    ScoreResponse,
    SessionIdRequest,
    StartSessionResponse,
    TranscribeResponse,
)
from ....services.notification_service import NotificationService
from ....services.scoring_service import ScoringService
from ....services.session_service import SessionService
from ....services.transcription_service import TranscriptionService, transcripts_by_question
from ... import deps

router = APIRouter()


@router.post("/consent", response_model=ConsentResponse)
async def record_consent(
    request: ConsentRequest,
    store=Depends(deps.get_store),
    clock=Depends(deps.get_clock),
):
    session = await SessionService(store, clock=clock).record_consent(request.token)
    return ConsentResponse(session_id=session.id, consent_at=session.consent_at, status=session.status)


@router.post("/create", response_model=CreateSessionResponse)
async def create_session(
    request: CreateSessionRequest,
    store=Depends(deps.get_store),
    clock=Depends(deps.get_clock),
):
    session = await SessionService(store, clock=clock).create_session(
        request.token, request.consent, request.precheck_passed
    )
    return CreateSessionResponse(
        session_id=session.id,
        questions=[QuestionBrief(id=a.question_id, text=a.question_text) for a in session.answers],
        status=session.status,
    )


@router.post("/start", response_model=StartSessionResponse)
async def start_session(
    request: SessionIdRequest,
    store=Depends(deps.get_store),
    clock=Depends(deps.get_clock),
):
    session = await SessionService(store, clock=clock).start_session(request.session_id)
    return StartSessionResponse(started_at=session.started_at, status=session.status)


@router.post("/transcribe", response_model=TranscribeResponse)
async def transcribe_session(
    request: SessionIdRequest,
    store=Depends(deps.get_store),
    storage=Depends(deps.get_storage),
    transcriber=Depends(deps.get_transcriber),
):
    session = await TranscriptionService(store, storage, transcriber).transcribe(request.session_id)
    return TranscribeResponse(transcripts=transcripts_by_question(session), status=session.status)


@router.post("/score", response_model=ScoreResponse)
async def score_session(
    request: SessionIdRequest,
    store=Depends(deps.get_store),
    scorer=Depends(deps.get_scorer),
):
    session, rubrics = await ScoringService(store, scorer).score(request.session_id)
    return ScoreResponse(
        scores={f"q{position}": rubric for position, rubric in rubrics.items()},
        total_correct=session.total_correct,
        total_score_0_100=session.total_score_0_100,
        status=session.status,
    )


@router.post("/notify", response_model=NotifyResponse)
async def notify_session(
    request: SessionIdRequest,
    store=Depends(deps.get_store),
    mailer=Depends(deps.get_mailer),
    clock=Depends(deps.get_clock),
):
    sent_to, sent_at = await NotificationService(store, mailer, clock=clock).notify(request.session_id)
    return NotifyResponse(email_sent_to=sent_to, email_sent_at=sent_at)

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from ....core.exceptions import InvalidRequest
from ....schemas.session import FinalizeUploadResponse, SessionIdRequest, UploadChunkResponse
from ....services.upload_service import UploadService
from ... import deps

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/chunk", response_model=UploadChunkResponse)
async def upload_chunk(
    session_id: Optional[str] = Form(None),
    question_id: Optional[str] = Form(None),
    chunk_type: Optional[str] = Form("answer"),
    hint_used: Optional[str] = Form("false"),
    file: Optional[UploadFile] = File(None),
    store=Depends(deps.get_store),
    storage=Depends(deps.get_storage),
    clock=Depends(deps.get_clock),
):
    """One recorded answer. Only the hint flag is written to the session."""
    if not session_id or not question_id or file is None:
        raise InvalidRequest(required=["session_id", "question_id", "file"])
    try:
        parsed_question_id = int(question_id)
    except ValueError:
        raise InvalidRequest("question_id must be an integer", question_id=question_id)

    data = await file.read()
    logger.info(f"Upload for session {session_id}, question {parsed_question_id}: {len(data)} bytes")

    result = await UploadService(store, storage, clock=clock).upload_chunk(
        session_id,
        parsed_question_id,
        chunk_type,
        (hint_used or "").lower() == "true",
        data,
    )
    return UploadChunkResponse(**result)


@router.post("/finalize", response_model=FinalizeUploadResponse)
async def finalize_upload(
    request: SessionIdRequest,
    store=Depends(deps.get_store),
    storage=Depends(deps.get_storage),
    clock=Depends(deps.get_clock),
):
    session = await UploadService(store, storage, clock=clock).finalize(request.session_id)
    return FinalizeUploadResponse(
        video_link=session.video_link,
        duration_minutes=session.duration_minutes,
        status=session.status,
    )

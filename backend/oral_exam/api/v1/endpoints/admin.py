from typing import Optional

from fastapi import APIRouter, Body, Depends

from ....schemas.auth import MagicLinkRequest, MagicLinkResponse
from ....schemas.session import (
    AdminAck,
    CloseSessionRequest,
    FinalizeSessionRequest,
    SessionDetail,
    SessionListResponse,
    SessionPatch,
)
from ....services.admin_service import AdminService
from ....services.state_machine import SessionStatus
from ... import deps

router = APIRouter()


@router.post("/generate-link", response_model=MagicLinkResponse)
async def generate_link(
    request: MagicLinkRequest,
    reviewer: str = Depends(deps.get_current_reviewer),
    store=Depends(deps.get_store),
    clock=Depends(deps.get_clock),
):
    return await AdminService(store, clock=clock).generate_magic_link(request)


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions(
    reviewer: str = Depends(deps.get_current_reviewer),
    store=Depends(deps.get_store),
):
    sessions = await AdminService(store).list_sessions()
    return SessionListResponse(sessions=sessions, count=len(sessions))


@router.get("/sessions/{session_id}", response_model=SessionDetail)
async def get_session(
    session_id: str,
    reviewer: str = Depends(deps.get_current_reviewer),
    store=Depends(deps.get_store),
):
    return await AdminService(store).get_session(session_id)


@router.patch("/sessions/{session_id}", response_model=SessionDetail)
async def patch_session(
    session_id: str,
    patch: SessionPatch,
    reviewer: str = Depends(deps.get_current_reviewer),
    store=Depends(deps.get_store),
):
    return await AdminService(store).patch_session(session_id, patch)


@router.post("/sessions/{session_id}/finalize", response_model=AdminAck)
async def finalize_session(
    session_id: str,
    request: Optional[FinalizeSessionRequest] = Body(None),
    reviewer: str = Depends(deps.get_current_reviewer),
    store=Depends(deps.get_store),
):
    reviewed_by = (request.reviewed_by if request else None) or reviewer
    session = await AdminService(store).finalize_session(session_id, reviewed_by)
    return AdminAck(session_id=session.id, status=session.status, finalized=session.finalized)


@router.post("/sessions/{session_id}/abort", response_model=AdminAck)
async def abort_session(
    session_id: str,
    request: Optional[CloseSessionRequest] = Body(None),
    reviewer: str = Depends(deps.get_current_reviewer),
    store=Depends(deps.get_store),
):
    reason = request.reason if request else None
    session = await AdminService(store).close_session(session_id, SessionStatus.ABORTED, reason)
    return AdminAck(session_id=session.id, status=session.status, finalized=session.finalized)


@router.post("/sessions/{session_id}/expire", response_model=AdminAck)
async def expire_session(
    session_id: str,
    request: Optional[CloseSessionRequest] = Body(None),
    reviewer: str = Depends(deps.get_current_reviewer),
    store=Depends(deps.get_store),
):
    reason = request.reason if request else None
    session = await AdminService(store).close_session(session_id, SessionStatus.EXPIRED, reason)
    return AdminAck(session_id=session.id, status=session.status, finalized=session.finalized)

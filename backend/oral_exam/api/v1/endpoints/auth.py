import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ....core.exceptions import AlreadyCompleted, InvalidRequest, NotInRoster, TokenExpired, TokenInvalid
from ....schemas.auth import VerifyTokenRequest, VerifyTokenResponse
from ....services.roster_gate import RosterGate
from ... import deps

router = APIRouter()
logger = logging.getLogger(__name__)

IDENTITY_ERRORS = (TokenInvalid, TokenExpired, NotInRoster, AlreadyCompleted)


@router.post("/verify", response_model=VerifyTokenResponse, response_model_exclude_none=True)
async def verify_token(
    request: VerifyTokenRequest,
    store=Depends(deps.get_store),
    clock=Depends(deps.get_clock),
):
    """Admit a magic-link holder and attach (or create) their open session."""
    if not request.token:
        raise InvalidRequest(required=["token"])
    try:
        return await RosterGate(store, clock=clock).verify(request.token)
    except IDENTITY_ERRORS as e:
        logger.info(f"Token rejected: {e.code}")
        body = VerifyTokenResponse(valid=False, error=e.code, message=e.message)
        return JSONResponse(status_code=e.status_code, content=body.model_dump(exclude_none=True))

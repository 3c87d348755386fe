"""
Magic-link and admin token handling.

Magic-link tokens carry the full identity claim so a session can be created
from the token alone; admin tokens only name the reviewer.
"""
import hashlib
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from jose import JWTError, jwt

from .config import settings
from .exceptions import AdminUnauthorized, TokenExpired, TokenInvalid
from ..schemas.auth import IdentityClaim
from ..utils.timezone import parse_iso, to_iso, utc_now

MAGIC_LINK_TYPE = "magic_link"
ADMIN_TYPE = "admin"

_CLAIM_FIELDS = ("student_id_hash", "id_last4", "first_name", "last_name", "email")


def hash_student_id(identifier: str) -> str:
    """One-way digest of a durable student identifier."""
    return hashlib.sha256(identifier.strip().lower().encode("utf-8")).hexdigest()


def _epoch(dt: datetime) -> int:
    return int((dt - datetime(1970, 1, 1)).total_seconds())


def _from_epoch(value: int) -> datetime:
    return datetime(1970, 1, 1) + timedelta(seconds=int(value))


def create_magic_link_token(
    student: Dict[str, Any],
    issued_at: Optional[datetime] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    issued_at = issued_at or utc_now()
    expires_at = issued_at + (expires_delta or timedelta(days=settings.magic_link_ttl_days))
    to_encode = {field: student[field] for field in _CLAIM_FIELDS}
    to_encode.update({
        "slot_start": to_iso(student["slot_start"]),
        "slot_end": to_iso(student["slot_end"]),
        "iat": _epoch(issued_at),
        "exp": _epoch(expires_at),
        "type": MAGIC_LINK_TYPE,
    })
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def build_magic_link(base_url: str, token: str) -> str:
    return f"{base_url.rstrip('/')}/exam?token={token}"


def decode_magic_link_token(token: str, clock: Callable[[], datetime] = utc_now) -> IdentityClaim:
    """
    Verify signature and expiry and return the identity claim.

    Fails closed: anything other than a well-formed, unexpired magic-link
    token is TOKEN_INVALID, expiry is TOKEN_EXPIRED.
    """
    if not token:
        raise TokenInvalid()
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.algorithm],
            options={"verify_exp": False},
        )
    except JWTError:
        raise TokenInvalid()

    if payload.get("type") != MAGIC_LINK_TYPE:
        raise TokenInvalid()

    try:
        claim = IdentityClaim(
            **{field: payload[field] for field in _CLAIM_FIELDS},
            slot_start=parse_iso(payload["slot_start"]),
            slot_end=parse_iso(payload["slot_end"]),
            issued_at=_from_epoch(payload["iat"]),
            expires_at=_from_epoch(payload["exp"]),
        )
    except (KeyError, TypeError, ValueError):
        raise TokenInvalid()

    if clock() > claim.expires_at:
        raise TokenExpired()
    return claim


def create_admin_token(reviewer: str, expires_delta: Optional[timedelta] = None) -> str:
    now = utc_now()
    expire = now + (expires_delta or timedelta(hours=settings.admin_token_ttl_hours))
    to_encode = {
        "sub": reviewer,
        "iat": _epoch(now),
        "exp": _epoch(expire),
        "type": ADMIN_TYPE,
    }
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def verify_admin_token(token: str) -> str:
    """Return the reviewer name carried by a valid admin token."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        raise AdminUnauthorized()
    if payload.get("type") != ADMIN_TYPE or not payload.get("sub"):
        raise AdminUnauthorized()
    return payload["sub"]

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class IdentityClaim(BaseModel):
    """Magic-link payload. Expiry is absolute and independent of the slot."""
    student_id_hash: str
    id_last4: str
    first_name: str
    last_name: str
    email: str
    slot_start: datetime
    slot_end: datetime
    issued_at: datetime
    expires_at: datetime


class StudentInfo(BaseModel):
    student_id_hash: str
    id_last4: str
    first_name: str
    last_name: str
    email: str
    slot_start: datetime
    slot_end: datetime


class VerifyTokenRequest(BaseModel):
    token: Optional[str] = None


class VerifyTokenResponse(BaseModel):
    valid: bool
    student: Optional[StudentInfo] = None
    session_id: Optional[str] = None
    status: Optional[str] = None
    can_start: Optional[bool] = None
    error: Optional[str] = None
    message: Optional[str] = None


class MagicLinkRequest(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[EmailStr] = None
    id_last4: Optional[str] = Field(None, min_length=4, max_length=4)
    student_id: Optional[str] = None
    slot_start: Optional[datetime] = None
    slot_end: Optional[datetime] = None
    base_url: Optional[str] = None


class MagicLinkResponse(BaseModel):
    success: bool = True
    link: str
    student_id_hash: str
    slot_start: datetime
    slot_end: datetime

"""
Esquemas del backoffice.
"""

from pydantic import Field
from typing import Optional, List, Literal

from bagami.schemas.common import CamelModel


class BackofficeLogin(CamelModel):
    email: str
    password: str


class UserStatusUpdate(CamelModel):
    is_active: bool


class IdVerificationUpdate(CamelModel):
    document_id: str
    status: Literal["approved", "rejected"]


class WithdrawalReject(CamelModel):
    reason: str = Field(..., min_length=1)


class TopupRequest(CamelModel):
    user_ids: List[str] = Field(..., min_length=1)
    amount: int = Field(..., gt=0)
    reason: str = Field(..., min_length=1)


class PlatformSettingsUpdate(CamelModel):
    commission_rate: float = Field(..., ge=0, le=1)


class AuditEntryCreate(CamelModel):
    action: str = Field(..., min_length=1)
    target_type: Optional[str] = None
    target_id: Optional[str] = None
    details: Optional[str] = None


class SubadminCreate(CamelModel):
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=6)
    name: Optional[str] = None
    role_title: Optional[str] = None
    permissions: List[str] = Field(..., min_length=1)


class SubadminUpdate(CamelModel):
    name: Optional[str] = None
    role_title: Optional[str] = None
    password: Optional[str] = Field(None, min_length=6)
    permissions: Optional[List[str]] = None
    is_active: Optional[bool] = None


class AdminNotificationSend(CamelModel):
    title: str = ""
    message: str = ""
    link: Optional[str] = None
    send_to_all: bool = False
    user_ids: List[str] = []

"""
Activation code and whitelist request schemas
"""
from typing import Optional
from pydantic import BaseModel, Field, field_validator

from common.types import IdentifierType, UserRole


class GenerateCodeRequest(BaseModel):
    whitelist_id: str = Field(..., description="Whitelist entry to issue the code for")
    expires_in_hours: Optional[int] = Field(None, description="Lifetime in hours, clamped to 1..720")
    send_email: bool = Field(False, description="Deliver the code once by email")
    email_template: Optional[str] = Field(None, description="Accepted for compatibility, the platform template is always used")
    custom_message: Optional[str] = Field(None, max_length=1000)


class RegenerateCodeRequest(GenerateCodeRequest):
    """Revokes the current active code, if any, before issuing"""


class RevokeCodeRequest(BaseModel):
    reason: str = Field(..., description="Mandatory revocation reason")

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, v):
        if not v or len(v.strip()) == 0:
            raise ValueError('Revocation reason cannot be empty')
        return v.strip()


class ExtendCodeRequest(BaseModel):
    # Range is enforced by the lifecycle manager so the error shape matches
    additional_hours: int = Field(..., description="Hours to add, 1..720")


class ResendEmailRequest(BaseModel):
    custom_message: Optional[str] = Field(None, max_length=1000)


class RedeemCodeRequest(BaseModel):
    identifier: str = Field(..., description="Email, phone or national id the entry was whitelisted with")
    code: str = Field(..., description="Activation code, dashes optional")

    @field_validator('identifier', 'code')
    @classmethod
    def validate_not_empty(cls, v):
        if not v or len(v.strip()) == 0:
            raise ValueError('Field cannot be empty')
        return v.strip()


class WhitelistCreateRequest(BaseModel):
    identifier: str
    identifier_type: IdentifierType = IdentifierType.EMAIL
    full_name: str
    assigned_role: UserRole
    assigned_supervisor_id: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=2000)

    @field_validator('assigned_role', mode='before')
    @classmethod
    def normalize_role(cls, v):
        return UserRole.parse(v)


class WhitelistUpdateRequest(BaseModel):
    """Only supplied fields are changed; the identifier is immutable"""
    full_name: Optional[str] = None
    assigned_role: Optional[UserRole] = None
    assigned_supervisor_id: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=2000)

    @field_validator('assigned_role', mode='before')
    @classmethod
    def normalize_role(cls, v):
        return UserRole.parse(v) if v is not None else None

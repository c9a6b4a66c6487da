from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, EmailStr, ConfigDict, Field, field_validator, model_validator, validate_email
from uuid import UUID

from .models import EmailStatus, Role


def _as_typed_email(value: str) -> str:
    # stored as typed; login compares addresses exactly
    validate_email(value)
    return value


class LocationCreate(BaseModel):
    name: str = Field(min_length=1)


class LocationOut(BaseModel):
    id: UUID
    name: str
    created_by: Optional[UUID] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class LocationMemberAdd(BaseModel):
    user_id: UUID


class MembershipStatusUpdate(BaseModel):
    user_id: UUID
    location_id: UUID
    is_active: bool


class MembershipOut(BaseModel):
    user_id: UUID
    location_id: UUID
    is_active: bool
    invited_by: Optional[UUID] = None
    invited_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class InvitationCreate(BaseModel):
    email: str
    location_id: UUID
    role: Role = Role.TEACHER

    @field_validator("email")
    @classmethod
    def check_email(cls, value: str) -> str:
        return _as_typed_email(value)


class InvitationOut(BaseModel):
    id: UUID
    email: str
    location_id: UUID
    role: Role
    invited_by: UUID
    expires_at: datetime
    model_config = ConfigDict(from_attributes=True)


class InvitationCreatedOut(BaseModel):
    invitation: InvitationOut
    invitation_sent: bool


class InvitationAccept(BaseModel):
    token: str
    # required only when the invitation creates the account
    password: Optional[str] = None


class UserCreate(BaseModel):
    email: str
    role: Role
    location_ids: List[UUID] = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def check_email(cls, value: str) -> str:
        return _as_typed_email(value)


class UserOut(BaseModel):
    id: UUID
    email: str
    role: Role
    is_active: bool
    created_by: Optional[UUID] = None
    deactivated_by: Optional[UUID] = None
    deactivated_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class UserCreatedOut(BaseModel):
    user: UserOut
    temporary_password_sent: bool


class ProfileOut(UserOut):
    locations: List[LocationOut] = []


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOut
    location_ids: List[UUID] = []


class LoginRequest(BaseModel):
    email: str
    password: str


class PasswordResetRequest(BaseModel):
    email: str


class PasswordResetConfirm(BaseModel):
    token: str
    new_password: str


class StatusMessage(BaseModel):
    message: str


class ButtonCreate(BaseModel):
    name: str = Field(min_length=1)
    url: str = Field(min_length=1)
    location_id: UUID


class ButtonOut(BaseModel):
    id: UUID
    name: str
    url: str
    location_id: UUID
    created_by: UUID
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class ButtonPermissionSet(BaseModel):
    roles: List[Role] = []
    user_ids: List[UUID] = []


class EmailTemplateCreate(BaseModel):
    name: str = Field(min_length=1)
    subject: str
    body: str
    location_id: UUID


class EmailTemplateOut(BaseModel):
    id: UUID
    name: str
    subject: str
    body: str
    location_id: UUID
    created_by: UUID
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class Recipient(BaseModel):
    email: EmailStr
    name: str


class BulkEmailRequest(BaseModel):
    template_id: UUID
    recipients: List[Recipient] = Field(min_length=1)


class ResendRequest(BaseModel):
    email_ids: List[UUID] = Field(min_length=1)

    @model_validator(mode="after")
    def dedupe(self):
        self.email_ids = list(dict.fromkeys(self.email_ids))
        return self


class SentEmailOut(BaseModel):
    id: UUID
    recipient_email: str
    recipient_name: str
    template_id: Optional[UUID] = None
    sender: str
    subject: str
    body: str
    status: EmailStatus
    error_message: Optional[str] = None
    location_id: UUID
    sent_at: datetime
    model_config = ConfigDict(from_attributes=True)


class BatchResultOut(BaseModel):
    sent: int
    failed: int
    skipped: List[UUID] = []
    failed_recipients: List[str] = []
    records: List[SentEmailOut] = []

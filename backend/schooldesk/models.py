import enum
import uuid
import sqlalchemy as sa
from sqlalchemy import (
    Column,
    String,
    Boolean,
    DateTime,
    ForeignKey,
    JSON,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from .database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, enum.Enum):
    DEVELOPER = "developer"
    LEAD = "lead"
    OFFICE = "office"
    TEACHER = "teacher"


class EmailStatus(str, enum.Enum):
    SENT = "sent"
    FAILED = "failed"
    RESENT = "resent"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


user_locations = sa.Table(
    "user_locations",
    Base.metadata,
    Column("user_id", UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("location_id", UUID(as_uuid=True), ForeignKey("locations.id", ondelete="CASCADE"), primary_key=True),
    # an inactive membership grants no access but is kept for reactivation
    Column("is_active", Boolean, nullable=False, default=True, server_default=sa.true()),
    Column("invited_by", UUID(as_uuid=True), nullable=True),
    Column("invited_at", DateTime(timezone=True), nullable=True, default=utcnow),
)


class User(Base):
    __tablename__ = "users"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, nullable=False, index=True)
    hashed_password = Column(String, nullable=False)
    role = Column(
        sa.Enum(Role, name="user_role", values_callable=_enum_values),
        nullable=False,
    )
    is_active = Column(Boolean, default=True, nullable=False)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    deactivated_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    deactivated_at = Column(DateTime(timezone=True), nullable=True)
    # sha256 digest of the outstanding reset token, never the token itself
    temporary_reset_token = Column(String, unique=True, nullable=True, index=True)
    temporary_reset_token_expiry = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    locations = relationship("Location", secondary=user_locations, back_populates="members")


class Location(Base):
    __tablename__ = "locations"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    members = relationship("User", secondary=user_locations, back_populates="locations")


class CustomButton(Base):
    __tablename__ = "custom_buttons"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    url = Column(Text, nullable=False)
    location_id = Column(UUID(as_uuid=True), ForeignKey("locations.id", ondelete="CASCADE"), nullable=False)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    permissions = relationship(
        "ButtonPermission",
        back_populates="button",
        cascade="all, delete-orphan",
    )


class ButtonPermission(Base):
    __tablename__ = "button_permissions"
    __table_args__ = (
        sa.CheckConstraint(
            "(role IS NOT NULL AND user_id IS NULL) OR (role IS NULL AND user_id IS NOT NULL)",
            name="ck_button_permission_role_xor_user",
        ),
    )
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    button_id = Column(UUID(as_uuid=True), ForeignKey("custom_buttons.id", ondelete="CASCADE"), nullable=False)
    role = Column(sa.Enum(Role, name="button_permission_role", values_callable=_enum_values), nullable=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=True)

    button = relationship("CustomButton", back_populates="permissions")


class LocationInvitation(Base):
    __tablename__ = "location_invitations"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String, nullable=False, index=True)
    location_id = Column(UUID(as_uuid=True), ForeignKey("locations.id", ondelete="CASCADE"), nullable=False)
    role = Column(sa.Enum(Role, name="invitation_role", values_callable=_enum_values), nullable=False)
    invited_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    # sha256 digest of the emailed token
    token = Column(String, unique=True, nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class EmailTemplate(Base):
    __tablename__ = "email_templates"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    subject = Column(Text, nullable=False)
    body = Column(Text, nullable=False)
    location_id = Column(UUID(as_uuid=True), ForeignKey("locations.id", ondelete="CASCADE"), nullable=False)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class SentEmail(Base):
    __tablename__ = "sent_emails"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    recipient_email = Column(String, nullable=False)
    recipient_name = Column(String, nullable=False)
    template_id = Column(UUID(as_uuid=True), ForeignKey("email_templates.id"), nullable=True)
    sender = Column(String, nullable=False)
    subject = Column(Text, nullable=False)
    body = Column(Text, nullable=False)
    status = Column(
        sa.Enum(EmailStatus, name="sent_email_status", values_callable=_enum_values),
        nullable=False,
    )
    error_message = Column(Text, nullable=True)
    location_id = Column(UUID(as_uuid=True), ForeignKey("locations.id"), nullable=False)
    sent_at = Column(DateTime(timezone=True), default=utcnow)


class AuditLog(Base):
    __tablename__ = "audit_logs"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    action = Column(String, nullable=False)
    target_type = Column(String)
    target_id = Column(UUID(as_uuid=True))
    details = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), default=utcnow)

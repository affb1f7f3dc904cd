"""Push notification campaign models."""
from __future__ import annotations

import enum
import uuid

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from app.db.base import Base

TITLE_MAX_LENGTH = 65
BODY_MAX_LENGTH = 240


class NotificationStatus(str, enum.Enum):
    """Lifecycle of a notification campaign."""

    DRAFT = "draft"
    SENDING = "sending"
    SENT = "sent"
    FAILED = "failed"


# The only moves a notification may make; status never goes backwards.
ALLOWED_TRANSITIONS: frozenset[tuple[NotificationStatus, NotificationStatus]] = frozenset(
    {
        (NotificationStatus.DRAFT, NotificationStatus.SENDING),
        (NotificationStatus.SENDING, NotificationStatus.SENT),
        (NotificationStatus.SENDING, NotificationStatus.FAILED),
    }
)


class RecipientStatus(str, enum.Enum):
    """Outcome of a single delivery message."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    READ = "read"


class PushNotification(Base):
    """A push campaign addressed to every active member of one organization."""

    __tablename__ = "push_notifications"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        UUID(as_uuid=True), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_by = Column(UUID(as_uuid=True), ForeignKey("app_users.id", ondelete="SET NULL"))

    title = Column(String(TITLE_MAX_LENGTH), nullable=False)
    body = Column(Text, nullable=False)
    data = Column(JSON)

    status = Column(String(20), nullable=False, default=NotificationStatus.DRAFT.value, index=True)
    sent_count = Column(Integer, nullable=False, default=0)
    failed_count = Column(Integer, nullable=False, default=0)
    sent_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class PushNotificationRecipient(Base):
    """Delivery outcome for one (beneficiary, push token) pair of a campaign."""

    __tablename__ = "push_notification_recipients"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    push_notification_id = Column(
        UUID(as_uuid=True),
        ForeignKey("push_notifications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    beneficiary_id = Column(
        UUID(as_uuid=True), ForeignKey("beneficiaries.id", ondelete="CASCADE"), nullable=False, index=True
    )
    push_token_id = Column(UUID(as_uuid=True), ForeignKey("push_tokens.id", ondelete="SET NULL"))

    status = Column(String(20), nullable=False, default=RecipientStatus.PENDING.value)
    error_message = Column(Text)
    sent_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

"""Push Notification Subscription model."""
import uuid
from sqlalchemy import Boolean, Column, ForeignKey, String, DateTime, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from app.db.base import Base


class PushSubscription(Base):
    """Stores an Expo push token registered by a beneficiary device."""
    __tablename__ = "push_tokens"
    __table_args__ = (
        UniqueConstraint("beneficiary_id", "expo_push_token", name="uq_push_tokens_beneficiary_token"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    beneficiary_id = Column(
        UUID(as_uuid=True), ForeignKey("beneficiaries.id", ondelete="CASCADE"), nullable=False, index=True
    )

    expo_push_token = Column(String(255), nullable=False)
    device_id = Column(String(255))
    platform = Column(String(20))  # ios | android | web
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

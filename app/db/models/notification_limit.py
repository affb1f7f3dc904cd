"""Per-organization notification quota model."""
from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from app.db.base import Base


class PlanType(str, enum.Enum):
    FREE = "free"
    LIGHT = "light"
    PRO = "pro"
    PREMIUM = "premium"


@dataclass(frozen=True)
class PlanLimits:
    daily: int
    monthly: int
    min_hours: int


PLAN_LIMITS: dict[PlanType, PlanLimits] = {
    PlanType.FREE: PlanLimits(daily=1, monthly=5, min_hours=24),
    PlanType.LIGHT: PlanLimits(daily=2, monthly=15, min_hours=12),
    PlanType.PRO: PlanLimits(daily=3, monthly=30, min_hours=8),
    PlanType.PREMIUM: PlanLimits(daily=5, monthly=50, min_hours=4),
}


class OrganizationNotificationLimit(Base):
    """Sending quota ledger for one organization."""

    __tablename__ = "organization_notification_limits"
    __table_args__ = (
        CheckConstraint("notifications_sent_today >= 0", name="sent_today_non_negative"),
        CheckConstraint("notifications_sent_this_month >= 0", name="sent_this_month_non_negative"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    plan_type = Column(String(20), nullable=False, default=PlanType.FREE.value)
    daily_limit = Column(Integer, nullable=False, default=PLAN_LIMITS[PlanType.FREE].daily)
    monthly_limit = Column(Integer, nullable=False, default=PLAN_LIMITS[PlanType.FREE].monthly)
    min_hours_between_notifications = Column(
        Integer, nullable=False, default=PLAN_LIMITS[PlanType.FREE].min_hours
    )

    notifications_sent_today = Column(Integer, nullable=False, default=0)
    notifications_sent_this_month = Column(Integer, nullable=False, default=0)
    last_notification_sent_at = Column(DateTime(timezone=True))
    reset_daily_at = Column(DateTime(timezone=True), nullable=False)
    reset_monthly_at = Column(DateTime(timezone=True), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

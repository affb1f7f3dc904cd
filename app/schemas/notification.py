"""Pydantic schemas for notification endpoints."""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Annotated, Any, Literal, Optional

from pydantic import AfterValidator, AliasChoices, BaseModel, ConfigDict, Field

from app.db.models.notification import BODY_MAX_LENGTH, TITLE_MAX_LENGTH
from app.db.models.notification_limit import PlanType


def _reject_blank(value: str) -> str:
    if not value.strip():
        raise ValueError("must not be blank")
    return value


NonBlankStr = Annotated[str, AfterValidator(_reject_blank)]


class NotificationCreate(BaseModel):
    """Schema for drafting a new notification."""

    title: NonBlankStr = Field(min_length=1, max_length=TITLE_MAX_LENGTH)
    body: NonBlankStr = Field(min_length=1, max_length=BODY_MAX_LENGTH)
    data: Optional[dict[str, Any]] = None


class NotificationUpdate(BaseModel):
    """Partial update of a draft notification."""

    title: Optional[NonBlankStr] = Field(default=None, min_length=1, max_length=TITLE_MAX_LENGTH)
    body: Optional[NonBlankStr] = Field(default=None, min_length=1, max_length=BODY_MAX_LENGTH)
    data: Optional[dict[str, Any]] = None


class NotificationRead(BaseModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    created_by: Optional[uuid.UUID]
    title: str
    body: str
    data: Optional[dict[str, Any]] = None
    status: str
    sent_count: int
    failed_count: int
    sent_at: Optional[datetime]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class DispatchRequest(BaseModel):
    """Trigger delivery of a draft notification."""

    notification_id: uuid.UUID = Field(
        validation_alias=AliasChoices("notificationId", "notification_id")
    )


class DispatchResultRead(BaseModel):
    """Aggregate outcome of a dispatch run."""

    sent_count: int = Field(serialization_alias="sentCount")
    failed_count: int = Field(serialization_alias="failedCount")
    total: int


class QuotaRead(BaseModel):
    """Snapshot of an organization's notification quota."""

    organization_id: uuid.UUID
    plan_type: str
    daily_limit: int
    monthly_limit: int
    min_hours_between_notifications: int
    notifications_sent_today: int
    notifications_sent_this_month: int
    last_notification_sent_at: Optional[datetime]
    reset_daily_at: datetime
    reset_monthly_at: datetime

    model_config = ConfigDict(from_attributes=True)


class QuotaStatusRead(QuotaRead):
    can_send_now: bool = Field(serialization_alias="canSendNow")


class PlanChangeRequest(BaseModel):
    plan_type: PlanType


class ModerationRequest(BaseModel):
    title: NonBlankStr = Field(min_length=1)
    body: NonBlankStr = Field(min_length=1)


class ModerationVerdictRead(BaseModel):
    """Verdict returned by the content moderation gate."""

    is_approved: bool = Field(serialization_alias="isApproved")
    reasons: list[str] = Field(default_factory=list)
    severity: Literal["low", "medium", "high"]


__all__ = [
    "NotificationCreate",
    "NotificationUpdate",
    "NotificationRead",
    "DispatchRequest",
    "DispatchResultRead",
    "QuotaRead",
    "QuotaStatusRead",
    "PlanChangeRequest",
    "ModerationRequest",
    "ModerationVerdictRead",
]

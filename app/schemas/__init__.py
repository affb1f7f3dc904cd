"""Pydantic schemas package."""

from app.schemas.auth import TokenPayload
from app.schemas.notification import (
    DispatchRequest,
    DispatchResultRead,
    ModerationRequest,
    ModerationVerdictRead,
    NotificationCreate,
    NotificationRead,
    NotificationUpdate,
    PlanChangeRequest,
    QuotaRead,
    QuotaStatusRead,
)
from app.schemas.push_token import PushTokenRead, PushTokenRegister, PushTokenUnregister

__all__ = [
    "TokenPayload",
    "DispatchRequest",
    "DispatchResultRead",
    "ModerationRequest",
    "ModerationVerdictRead",
    "NotificationCreate",
    "NotificationRead",
    "NotificationUpdate",
    "PlanChangeRequest",
    "QuotaRead",
    "QuotaStatusRead",
    "PushTokenRead",
    "PushTokenRegister",
    "PushTokenUnregister",
]

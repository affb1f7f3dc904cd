"""Pydantic schemas for device push token registration."""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class PushTokenRegister(BaseModel):
    """Payload sent by a mobile client after obtaining an Expo push token."""

    expo_push_token: str = Field(
        min_length=1,
        max_length=255,
        validation_alias=AliasChoices("expoPushToken", "expo_push_token"),
    )
    device_id: Optional[str] = Field(
        default=None,
        max_length=255,
        validation_alias=AliasChoices("deviceId", "device_id"),
    )
    platform: Optional[Literal["ios", "android", "web"]] = None


class PushTokenUnregister(BaseModel):
    expo_push_token: str = Field(
        min_length=1,
        max_length=255,
        validation_alias=AliasChoices("expoPushToken", "expo_push_token"),
    )


class PushTokenRead(BaseModel):
    id: uuid.UUID
    beneficiary_id: uuid.UUID
    expo_push_token: str
    device_id: Optional[str]
    platform: Optional[str]
    is_active: bool
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


__all__ = ["PushTokenRegister", "PushTokenUnregister", "PushTokenRead"]

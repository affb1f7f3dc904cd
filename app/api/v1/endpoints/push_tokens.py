"""Device push token registration for program members."""
from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.api import deps
from app.db.models.beneficiary import Beneficiary
from app.schemas import PushTokenRead, PushTokenRegister, PushTokenUnregister
from app.services.push_tokens import PushTokenService

router = APIRouter(prefix="/push-tokens", tags=["push-tokens"])


@router.post("", response_model=PushTokenRead, status_code=status.HTTP_201_CREATED)
def register_push_token(
    payload: PushTokenRegister,
    db: Session = Depends(deps.get_db),
    beneficiary: Beneficiary = Depends(deps.get_current_beneficiary),
) -> PushTokenRead:
    """Register a device, or reactivate it if the token was seen before."""

    service = PushTokenService(db)
    return service.register(
        beneficiary.id,
        payload.expo_push_token,
        device_id=payload.device_id,
        platform=payload.platform,
    )


@router.delete("", response_model=PushTokenRead)
def unregister_push_token(
    payload: PushTokenUnregister,
    db: Session = Depends(deps.get_db),
    beneficiary: Beneficiary = Depends(deps.get_current_beneficiary),
) -> PushTokenRead:
    service = PushTokenService(db)
    return service.unregister(beneficiary.id, payload.expo_push_token)

"""Shared API dependencies."""
from __future__ import annotations

import uuid

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.config import settings
from app.core.security import InvalidTokenError, decode_token
from app.db.models.beneficiary import Beneficiary
from app.db.models.organization import AppUser, UserRole
from app.db.session import get_db
from app.schemas import TokenPayload
from app.services.moderation import ContentModerator
from app.services.push_gateway import ExpoPushClient, PushClient
from app.utils.exceptions import AuthorizationError

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/auth/login")

_content_moderator_singleton: ContentModerator | None = None


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def _decode_subject(token: str, expected_type: str) -> uuid.UUID:
    if not token:
        raise _credentials_exception()
    try:
        token_data = TokenPayload.model_validate(decode_token(token))
    except (InvalidTokenError, ValidationError, ValueError, KeyError) as exc:
        raise _credentials_exception() from exc
    if token_data.type != expected_type:
        raise _credentials_exception()
    return token_data.sub


def get_current_user(
    token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)
) -> AppUser:
    """Resolve the authenticated staff member from the Authorization header."""

    user = db.get(AppUser, _decode_subject(token, "access"))
    if not user:
        raise _credentials_exception()
    return user


def get_current_beneficiary(
    token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)
) -> Beneficiary:
    """Resolve the program member registering a device."""

    beneficiary = db.get(Beneficiary, _decode_subject(token, "beneficiary"))
    if not beneficiary:
        raise _credentials_exception()
    return beneficiary


def require_organization_member(current_user: AppUser = Depends(get_current_user)) -> AppUser:
    if current_user.organization_id is None:
        raise AuthorizationError("User does not belong to an organization")
    return current_user


def require_notification_manager(
    current_user: AppUser = Depends(require_organization_member),
) -> AppUser:
    """Only organization owners and admins may create or send notifications."""

    if not current_user.can_manage_notifications:
        raise AuthorizationError(
            "Insufficient permissions to manage notifications",
            details={"role": current_user.role},
        )
    return current_user


def require_organization_owner(
    current_user: AppUser = Depends(require_notification_manager),
) -> AppUser:
    if current_user.role != UserRole.OWNER.value:
        raise AuthorizationError("Only the organization owner can change the plan")
    return current_user


def get_push_client() -> PushClient:
    return ExpoPushClient()


def get_content_moderator() -> ContentModerator:
    """Return a cached moderator; the LLM providers are resolved on first use."""

    global _content_moderator_singleton
    if _content_moderator_singleton is None:
        _content_moderator_singleton = ContentModerator()
    return _content_moderator_singleton

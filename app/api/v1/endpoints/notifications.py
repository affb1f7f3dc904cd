"""Notification campaign endpoints for organization staff."""
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.api import deps
from app.db.models.organization import AppUser
from app.schemas import (
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
from app.services.dispatch import NotificationDispatcher
from app.services.moderation import ContentModerator
from app.services.notifications import NotificationService
from app.services.push_gateway import PushClient
from app.services.quota import NotificationQuotaService

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=list[NotificationRead])
def list_notifications(
    db: Session = Depends(deps.get_db),
    current_user: AppUser = Depends(deps.require_organization_member),
) -> list[NotificationRead]:
    """Return the organization's notifications, newest first."""

    service = NotificationService(db)
    return service.list_for_organization(current_user.organization_id)


@router.post("", response_model=NotificationRead, status_code=status.HTTP_201_CREATED)
def create_notification(
    payload: NotificationCreate,
    db: Session = Depends(deps.get_db),
    current_user: AppUser = Depends(deps.require_notification_manager),
) -> NotificationRead:
    """Draft a notification. Rejected with the quota snapshot when no headroom is left."""

    service = NotificationService(db)
    return service.create_draft(
        current_user,
        title=payload.title,
        body=payload.body,
        data=payload.data,
    )


@router.get("/limits", response_model=QuotaStatusRead)
def read_limits(
    db: Session = Depends(deps.get_db),
    current_user: AppUser = Depends(deps.require_organization_member),
) -> QuotaStatusRead:
    quota_service = NotificationQuotaService(db)
    return quota_service.get_status(current_user.organization_id).to_schema()


@router.put("/limits/plan", response_model=QuotaRead)
def change_plan(
    payload: PlanChangeRequest,
    db: Session = Depends(deps.get_db),
    current_user: AppUser = Depends(deps.require_organization_owner),
) -> QuotaRead:
    """Switch the organization to another plan; counters are kept."""

    quota_service = NotificationQuotaService(db)
    return quota_service.change_plan(current_user.organization_id, payload.plan_type)


@router.post("/moderate", response_model=ModerationVerdictRead)
def moderate_notification(
    payload: ModerationRequest,
    moderator: ContentModerator = Depends(deps.get_content_moderator),
    _: AppUser = Depends(deps.require_notification_manager),
) -> ModerationVerdictRead:
    verdict = moderator.moderate(payload.title, payload.body)
    return ModerationVerdictRead(
        is_approved=verdict.is_approved,
        reasons=list(verdict.reasons),
        severity=verdict.severity,
    )


@router.post("/send", response_model=DispatchResultRead)
def send_notification(
    payload: DispatchRequest,
    db: Session = Depends(deps.get_db),
    current_user: AppUser = Depends(deps.require_notification_manager),
    push_client: PushClient = Depends(deps.get_push_client),
) -> DispatchResultRead:
    """Deliver a draft to every subscribed member of the organization."""

    organization_id = current_user.organization_id
    quota_service = NotificationQuotaService(db)
    notifications = NotificationService(db, quota_service)

    # Re-sends are a conflict even when the quota is exhausted.
    notifications.get_dispatchable(organization_id, payload.notification_id)
    quota_service.ensure_can_send(organization_id)

    dispatcher = NotificationDispatcher(
        db,
        push_client,
        notification_service=notifications,
        quota_service=quota_service,
    )
    result = dispatcher.dispatch(organization_id, payload.notification_id)
    return DispatchResultRead(
        sent_count=result.sent_count,
        failed_count=result.failed_count,
        total=result.total,
    )


@router.get("/{notification_id}", response_model=NotificationRead)
def read_notification(
    notification_id: uuid.UUID,
    db: Session = Depends(deps.get_db),
    current_user: AppUser = Depends(deps.require_organization_member),
) -> NotificationRead:
    service = NotificationService(db)
    return service.get(current_user.organization_id, notification_id)


@router.patch("/{notification_id}", response_model=NotificationRead)
def update_notification(
    notification_id: uuid.UUID,
    payload: NotificationUpdate,
    db: Session = Depends(deps.get_db),
    current_user: AppUser = Depends(deps.require_notification_manager),
) -> NotificationRead:
    """Edit a notification that is still a draft."""

    service = NotificationService(db)
    return service.update_draft(
        current_user.organization_id,
        notification_id,
        title=payload.title,
        body=payload.body,
        data=payload.data,
    )

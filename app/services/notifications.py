"""Notification campaign lifecycle: drafting, editing and status transitions."""
from __future__ import annotations

from typing import Any, List, Optional
from uuid import UUID

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.db.models.notification import (
    ALLOWED_TRANSITIONS,
    NotificationStatus,
    PushNotification,
)
from app.db.models.organization import AppUser
from app.services.quota import NotificationQuotaService
from app.utils.exceptions import ConflictError, NotFoundError
from app.utils.timeutils import utcnow


class InvalidTransitionError(ConflictError):
    """Requested status move is not in the transition table."""


class NotificationService:
    """Create and read notifications and guard their status machine."""

    def __init__(self, db: Session, quota_service: Optional[NotificationQuotaService] = None):
        self.db = db
        self.quota_service = quota_service or NotificationQuotaService(db)

    def create_draft(
        self,
        actor: AppUser,
        *,
        title: str,
        body: str,
        data: Optional[dict[str, Any]] = None,
    ) -> PushNotification:
        """Create a ``draft`` notification; rejected when the quota has no headroom."""

        self.quota_service.ensure_can_send(actor.organization_id)

        notification = PushNotification(
            organization_id=actor.organization_id,
            created_by=actor.id,
            title=title,
            body=body,
            data=data,
            status=NotificationStatus.DRAFT.value,
            sent_count=0,
            failed_count=0,
        )
        self.db.add(notification)
        self.db.commit()
        self.db.refresh(notification)
        logger.info(
            "Notification drafted",
            notification_id=str(notification.id),
            organization_id=str(notification.organization_id),
        )
        return notification

    def list_for_organization(self, organization_id: UUID) -> List[PushNotification]:
        return list(
            self.db.scalars(
                select(PushNotification)
                .where(PushNotification.organization_id == organization_id)
                .order_by(PushNotification.created_at.desc(), PushNotification.id)
            ).all()
        )

    def get(self, organization_id: UUID, notification_id: UUID) -> PushNotification:
        notification = self.db.scalar(
            select(PushNotification).where(
                PushNotification.id == notification_id,
                PushNotification.organization_id == organization_id,
            )
        )
        if notification is None:
            raise NotFoundError("Notification not found")
        return notification

    def get_dispatchable(self, organization_id: UUID, notification_id: UUID) -> PushNotification:
        """Load a notification that may still be sent, or raise not-found/conflict."""

        notification = self.get(organization_id, notification_id)
        if notification.status != NotificationStatus.DRAFT.value:
            raise ConflictError(
                "Notification already sent"
                if notification.status == NotificationStatus.SENT.value
                else f"Notification is {notification.status}",
                details={"status": notification.status},
            )
        return notification

    def update_draft(
        self,
        organization_id: UUID,
        notification_id: UUID,
        *,
        title: Optional[str] = None,
        body: Optional[str] = None,
        data: Optional[dict[str, Any]] = None,
    ) -> PushNotification:
        notification = self.get(organization_id, notification_id)
        if notification.status != NotificationStatus.DRAFT.value:
            raise ConflictError(
                "Only draft notifications can be edited",
                details={"status": notification.status},
            )
        if title is not None:
            notification.title = title
        if body is not None:
            notification.body = body
        if data is not None:
            notification.data = data
        self.db.commit()
        self.db.refresh(notification)
        return notification

    def transition(
        self,
        notification_id: UUID,
        source: NotificationStatus,
        target: NotificationStatus,
        **values: Any,
    ) -> None:
        """Move ``notification_id`` from ``source`` to ``target`` in one conditional UPDATE.

        Raises ``ConflictError`` when the record is no longer in ``source``.
        """

        if (source, target) not in ALLOWED_TRANSITIONS:
            raise InvalidTransitionError(
                f"Transition {source.value} -> {target.value} is not allowed"
            )

        result = self.db.execute(
            update(PushNotification)
            .where(
                PushNotification.id == notification_id,
                PushNotification.status == source.value,
            )
            .values(status=target.value, updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            raise ConflictError(
                f"Notification is no longer {source.value}",
                details={"notification_id": str(notification_id)},
            )
        self.db.commit()
        self.db.expire_all()
        logger.debug(
            "Notification status changed",
            notification_id=str(notification_id),
            source=source.value,
            target=target.value,
        )

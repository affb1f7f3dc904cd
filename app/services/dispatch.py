"""Deliver a notification campaign to every subscribed member of its organization."""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple
from uuid import UUID

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.db.models.notification import (
    NotificationStatus,
    PushNotificationRecipient,
    RecipientStatus,
)
from app.services.audience import AudienceResolver
from app.services.notifications import NotificationService
from app.services.push_gateway import (
    EXPO_BATCH_LIMIT,
    Delivered,
    PushClient,
    PushMessage,
    PushResponseMismatchError,
    PushTransportError,
    RejectedPermanent,
)
from app.services.push_tokens import PushTokenService
from app.services.quota import NotificationQuotaService
from app.utils.exceptions import ConflictError, DispatchError, LoyaltyNotificationsError
from app.utils.timeutils import utcnow

BATCH_SIZE = EXPO_BATCH_LIMIT


@dataclass(frozen=True)
class DispatchResult:
    sent_count: int
    failed_count: int
    total: int


@dataclass(frozen=True)
class _Delivery:
    beneficiary_id: UUID
    token_id: UUID
    message: PushMessage


def partition(items: Sequence[_Delivery], size: int) -> List[Sequence[_Delivery]]:
    return [items[start:start + size] for start in range(0, len(items), size)]


class NotificationDispatcher:
    """Run one campaign: mark it sending, deliver batch by batch, then mark it sent.

    Batches go out sequentially. A batch whose transport call fails counts all
    of its messages as failed and the run continues with the next batch.
    """

    def __init__(
        self,
        db: Session,
        push_client: PushClient,
        *,
        notification_service: Optional[NotificationService] = None,
        quota_service: Optional[NotificationQuotaService] = None,
        token_service: Optional[PushTokenService] = None,
        audience_resolver: Optional[AudienceResolver] = None,
    ) -> None:
        self.db = db
        self.push_client = push_client
        self.quota_service = quota_service or NotificationQuotaService(db)
        self.notifications = notification_service or NotificationService(db, self.quota_service)
        self.token_service = token_service or PushTokenService(db)
        self.audience_resolver = audience_resolver or AudienceResolver(db)

    def dispatch(self, organization_id: UUID, notification_id: UUID) -> DispatchResult:
        notification = self.notifications.get_dispatchable(organization_id, notification_id)

        # Resolve the ledger before touching status so a configuration error leaves a draft.
        self.quota_service.get_or_create(organization_id)

        title, body = notification.title, notification.body
        extra_data = dict(notification.data or {})
        self.notifications.transition(notification_id, NotificationStatus.DRAFT, NotificationStatus.SENDING)
        logger.info(
            "Notification dispatch started",
            notification_id=str(notification_id),
            organization_id=str(organization_id),
        )

        sent_count = 0
        failed_count = 0
        try:
            deliveries = self._build_deliveries(notification_id, organization_id, title, body, extra_data)
            for batch in partition(deliveries, BATCH_SIZE):
                batch_sent, batch_failed = self._send_batch(notification_id, batch)
                sent_count += batch_sent
                failed_count += batch_failed

            self.notifications.transition(
                notification_id,
                NotificationStatus.SENDING,
                NotificationStatus.SENT,
                sent_count=sent_count,
                failed_count=failed_count,
                sent_at=utcnow(),
            )
        except LoyaltyNotificationsError:
            raise
        except Exception as exc:
            self.db.rollback()
            logger.error(
                "Notification dispatch aborted",
                notification_id=str(notification_id),
                error=repr(exc),
            )
            self._mark_failed(notification_id, sent_count, failed_count)
            raise DispatchError(
                "Notification dispatch failed",
                details={"sentCount": sent_count, "failedCount": failed_count},
            ) from exc

        try:
            self.quota_service.record_send(organization_id)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception(
                "Could not record quota usage for a sent notification",
                notification_id=str(notification_id),
                organization_id=str(organization_id),
            )

        logger.info(
            "Notification dispatch finished",
            notification_id=str(notification_id),
            sent=sent_count,
            failed=failed_count,
            total=len(deliveries),
        )
        return DispatchResult(sent_count=sent_count, failed_count=failed_count, total=len(deliveries))

    def _build_deliveries(
        self,
        notification_id: UUID,
        organization_id: UUID,
        title: str,
        body: str,
        extra_data: dict,
    ) -> List[_Delivery]:
        data = {
            **extra_data,
            "notification_id": str(notification_id),
            "organization_id": str(organization_id),
            "route": settings.NOTIFICATION_DEEP_LINK_ROUTE,
        }
        deliveries: List[_Delivery] = []
        for member in self.audience_resolver.resolve(organization_id):
            for token in member.tokens:
                deliveries.append(
                    _Delivery(
                        beneficiary_id=member.beneficiary_id,
                        token_id=token.id,
                        message=PushMessage(to=token.expo_push_token, title=title, body=body, data=data),
                    )
                )
        return deliveries

    def _send_batch(self, notification_id: UUID, batch: Sequence[_Delivery]) -> Tuple[int, int]:
        try:
            results = self.push_client.send_batch([delivery.message for delivery in batch])
        except PushResponseMismatchError:
            raise
        except Exception as exc:
            # Anything the client raises is a failed batch, not a failed campaign.
            reason = str(exc) if isinstance(exc, PushTransportError) else f"{type(exc).__name__}: {exc}"
            logger.warning(
                "Push batch failed; counting all messages as failed",
                notification_id=str(notification_id),
                batch_size=len(batch),
                error=reason,
            )
            for delivery in batch:
                self._record_recipient(notification_id, delivery, RecipientStatus.FAILED, reason)
            self.db.commit()
            return 0, len(batch)

        if len(results) != len(batch):
            raise PushResponseMismatchError(
                f"Push channel returned {len(results)} results for {len(batch)} messages"
            )

        sent = 0
        failed = 0
        for delivery, result in zip(batch, results):
            if isinstance(result, Delivered):
                sent += 1
                self._record_recipient(notification_id, delivery, RecipientStatus.SENT)
                continue
            failed += 1
            self._record_recipient(notification_id, delivery, RecipientStatus.FAILED, result.reason)
            if isinstance(result, RejectedPermanent):
                self.token_service.deactivate(delivery.token_id, commit=False)
        self.db.commit()
        return sent, failed

    def _record_recipient(
        self,
        notification_id: UUID,
        delivery: _Delivery,
        status: RecipientStatus,
        error_message: Optional[str] = None,
    ) -> None:
        self.db.add(
            PushNotificationRecipient(
                push_notification_id=notification_id,
                beneficiary_id=delivery.beneficiary_id,
                push_token_id=delivery.token_id,
                status=status.value,
                error_message=error_message,
                sent_at=utcnow() if status == RecipientStatus.SENT else None,
            )
        )

    def _mark_failed(self, notification_id: UUID, sent_count: int, failed_count: int) -> None:
        try:
            self.notifications.transition(
                notification_id,
                NotificationStatus.SENDING,
                NotificationStatus.FAILED,
                sent_count=sent_count,
                failed_count=failed_count,
                sent_at=utcnow(),
            )
        except ConflictError:
            logger.warning(
                "Notification left sending before it could be marked failed",
                notification_id=str(notification_id),
            )
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Could not mark notification as failed", notification_id=str(notification_id))


__all__ = ["BATCH_SIZE", "DispatchResult", "NotificationDispatcher"]

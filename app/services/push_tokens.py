"""Device push token registration and lifecycle."""
from __future__ import annotations

from typing import Optional
from uuid import UUID

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.db.models.push_subscription import PushSubscription
from app.utils.exceptions import NotFoundError


class PushTokenService:
    """Owns the ``is_active`` state of beneficiary push subscriptions."""

    def __init__(self, db: Session):
        self.db = db

    def _find(self, beneficiary_id: UUID, expo_push_token: str) -> Optional[PushSubscription]:
        return self.db.scalar(
            select(PushSubscription).where(
                PushSubscription.beneficiary_id == beneficiary_id,
                PushSubscription.expo_push_token == expo_push_token,
            )
        )

    def register(
        self,
        beneficiary_id: UUID,
        expo_push_token: str,
        *,
        device_id: Optional[str] = None,
        platform: Optional[str] = None,
    ) -> PushSubscription:
        """Create the subscription, or reactivate it if the token is already known."""

        subscription = self._find(beneficiary_id, expo_push_token)
        if subscription is None:
            subscription = PushSubscription(
                beneficiary_id=beneficiary_id,
                expo_push_token=expo_push_token,
                device_id=device_id,
                platform=platform,
                is_active=True,
            )
            self.db.add(subscription)
            try:
                self.db.commit()
            except IntegrityError:
                # Same device registered twice concurrently; fall through to reactivate.
                self.db.rollback()
                subscription = self._find(beneficiary_id, expo_push_token)
                if subscription is None:
                    raise
            else:
                self.db.refresh(subscription)
                logger.info(
                    "Push token registered",
                    beneficiary_id=str(beneficiary_id),
                    platform=platform,
                )
                return subscription

        subscription.is_active = True
        subscription.device_id = device_id
        subscription.platform = platform
        self.db.commit()
        self.db.refresh(subscription)
        logger.info("Push token reactivated", beneficiary_id=str(beneficiary_id), token_id=str(subscription.id))
        return subscription

    def unregister(self, beneficiary_id: UUID, expo_push_token: str) -> PushSubscription:
        subscription = self._find(beneficiary_id, expo_push_token)
        if subscription is None:
            raise NotFoundError("Push token not found")
        self.deactivate(subscription.id)
        self.db.refresh(subscription)
        return subscription

    def deactivate(self, token_id: UUID, *, commit: bool = True) -> bool:
        """Flip ``is_active`` to false. Idempotent; returns whether a row changed."""

        result = self.db.execute(
            update(PushSubscription)
            .where(PushSubscription.id == token_id, PushSubscription.is_active.is_(True))
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        if commit:
            self.db.commit()
        changed = result.rowcount == 1
        if changed:
            logger.info("Push token deactivated", token_id=str(token_id))
        return changed

"""Per-organization notification quota ledger."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable
from uuid import UUID

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.models.notification_limit import PLAN_LIMITS, OrganizationNotificationLimit, PlanType
from app.schemas.notification import QuotaRead, QuotaStatusRead
from app.utils.exceptions import ConfigurationError, QuotaExceededError
from app.utils.timeutils import ensure_utc, next_day_start, next_month_start, utcnow


@dataclass(frozen=True)
class QuotaStatus:
    """Quota record plus the computed "may send right now" flag."""

    limit: OrganizationNotificationLimit
    can_send_now: bool

    def to_schema(self) -> QuotaStatusRead:
        snapshot = QuotaRead.model_validate(self.limit).model_dump()
        return QuotaStatusRead(**snapshot, can_send_now=self.can_send_now)


def quota_allows(limit: OrganizationNotificationLimit, now: datetime) -> bool:
    """Evaluate the daily, monthly and cooldown rules against ``limit``."""

    if limit.notifications_sent_today >= limit.daily_limit:
        return False
    if limit.notifications_sent_this_month >= limit.monthly_limit:
        return False
    last_sent = ensure_utc(limit.last_notification_sent_at)
    if last_sent is None:
        return True
    elapsed_hours = (ensure_utc(now) - last_sent).total_seconds() / 3600
    return elapsed_hours >= limit.min_hours_between_notifications


class NotificationQuotaService:
    """Read and mutate the quota ledger of an organization.

    Counter increments are issued as a single conditional UPDATE so two
    concurrent dispatches cannot push a counter past its limit.
    """

    def __init__(self, db: Session, *, time_provider: Callable[[], datetime] | None = None):
        self.db = db
        self._now = time_provider or utcnow

    def _find(self, organization_id: UUID) -> OrganizationNotificationLimit | None:
        return self.db.scalar(
            select(OrganizationNotificationLimit).where(
                OrganizationNotificationLimit.organization_id == organization_id
            )
        )

    def get_or_create(self, organization_id: UUID) -> OrganizationNotificationLimit:
        """Return the quota record, lazily creating a ``free`` plan one."""

        existing = self._find(organization_id)
        if existing is not None:
            return existing

        now = self._now()
        plan = PLAN_LIMITS[PlanType.FREE]
        limit = OrganizationNotificationLimit(
            organization_id=organization_id,
            plan_type=PlanType.FREE.value,
            daily_limit=plan.daily,
            monthly_limit=plan.monthly,
            min_hours_between_notifications=plan.min_hours,
            notifications_sent_today=0,
            notifications_sent_this_month=0,
            reset_daily_at=next_day_start(now),
            reset_monthly_at=next_month_start(now),
        )
        self.db.add(limit)
        try:
            self.db.commit()
        except IntegrityError as exc:
            # Either a concurrent request created it first or the organization is unknown.
            self.db.rollback()
            existing = self._find(organization_id)
            if existing is not None:
                return existing
            raise ConfigurationError(
                "Notification quota could not be created for organization",
                details={"organization_id": str(organization_id)},
            ) from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise ConfigurationError(
                "Notification quota could not be created for organization",
                details={"organization_id": str(organization_id)},
            ) from exc

        self.db.refresh(limit)
        logger.info(
            "Created default notification quota",
            organization_id=str(organization_id),
            plan_type=limit.plan_type,
        )
        return limit

    def can_send(self, organization_id: UUID) -> bool:
        limit = self.get_or_create(organization_id)
        return quota_allows(limit, self._now())

    def get_status(self, organization_id: UUID) -> QuotaStatus:
        limit = self.get_or_create(organization_id)
        return QuotaStatus(limit=limit, can_send_now=quota_allows(limit, self._now()))

    def ensure_can_send(self, organization_id: UUID) -> QuotaStatus:
        """Raise ``QuotaExceededError`` carrying the snapshot when sending is blocked."""

        quota_status = self.get_status(organization_id)
        if not quota_status.can_send_now:
            logger.info(
                "Notification quota exhausted",
                organization_id=str(organization_id),
                sent_today=quota_status.limit.notifications_sent_today,
                sent_this_month=quota_status.limit.notifications_sent_this_month,
            )
            raise QuotaExceededError(
                "Notification limit reached",
                details={
                    "limits": quota_status.to_schema().model_dump(mode="json", by_alias=True)
                },
            )
        return quota_status

    def record_send(self, organization_id: UUID) -> bool:
        """Consume one unit of quota for a completed campaign.

        Returns ``False`` when the conditional increment matched no row, which
        happens only if a concurrent dispatch already used the last unit.
        """

        now = self._now()
        table = OrganizationNotificationLimit
        stmt = (
            update(table)
            .where(
                table.organization_id == organization_id,
                table.notifications_sent_today < table.daily_limit,
                table.notifications_sent_this_month < table.monthly_limit,
            )
            .values(
                notifications_sent_today=table.notifications_sent_today + 1,
                notifications_sent_this_month=table.notifications_sent_this_month + 1,
                last_notification_sent_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        self.db.commit()
        self.db.expire_all()

        recorded = result.rowcount == 1
        if recorded:
            logger.info("Notification quota consumed", organization_id=str(organization_id))
        else:
            logger.warning(
                "Notification quota increment skipped; limit already reached",
                organization_id=str(organization_id),
            )
        return recorded

    def change_plan(self, organization_id: UUID, plan_type: PlanType) -> OrganizationNotificationLimit:
        """Apply the catalogue limits of ``plan_type``; counters are kept."""

        limit = self.get_or_create(organization_id)
        plan = PLAN_LIMITS[plan_type]
        limit.plan_type = plan_type.value
        limit.daily_limit = plan.daily
        limit.monthly_limit = plan.monthly
        limit.min_hours_between_notifications = plan.min_hours
        self.db.commit()
        self.db.refresh(limit)
        logger.info(
            "Notification plan changed",
            organization_id=str(organization_id),
            plan_type=plan_type.value,
        )
        return limit

    def reset_expired_counters(self) -> dict[str, int]:
        """Zero the daily/monthly counters whose reset mark has passed."""

        now = self._now()
        table = OrganizationNotificationLimit
        daily = self.db.execute(
            update(table)
            .where(table.reset_daily_at <= now)
            .values(
                notifications_sent_today=0,
                reset_daily_at=next_day_start(now),
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        monthly = self.db.execute(
            update(table)
            .where(table.reset_monthly_at <= now)
            .values(
                notifications_sent_this_month=0,
                reset_monthly_at=next_month_start(now),
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        self.db.expire_all()

        counts = {"daily_resets": daily.rowcount, "monthly_resets": monthly.rowcount}
        logger.info("Notification quota counters reset", **counts)
        return counts

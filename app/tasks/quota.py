"""Celery tasks maintaining the notification quota ledger."""
from __future__ import annotations

from loguru import logger

from app.celery_app import celery_app
from app.db.session import SessionLocal
from app.services.quota import NotificationQuotaService


@celery_app.task(name="app.tasks.quota.reset_notification_counters")
def reset_notification_counters() -> dict[str, int]:
    """Zero the daily and monthly counters whose reset marks have passed."""

    db = SessionLocal()
    try:
        counts = NotificationQuotaService(db).reset_expired_counters()
        logger.info("Notification counters reset", **counts)
        return counts
    finally:
        db.close()

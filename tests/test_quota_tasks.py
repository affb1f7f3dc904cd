"""Tests for the quota maintenance Celery task."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from sqlalchemy.orm import sessionmaker

from app.db.models import OrganizationNotificationLimit
from app.tasks.quota import reset_notification_counters


@pytest.fixture()
def task_session_factory(db_session):
    factory = sessionmaker(autocommit=False, autoflush=False, bind=db_session.bind)
    sessions: list = []

    def create_session():
        session = factory()
        sessions.append(session)
        return session

    try:
        yield create_session
    finally:
        for session in sessions:
            session.close()


def test_reset_notification_counters(db_session, task_session_factory, organization):
    past = datetime.now(timezone.utc) - timedelta(hours=1)
    future = datetime.now(timezone.utc) + timedelta(days=10)
    db_session.add(
        OrganizationNotificationLimit(
            organization_id=organization.id,
            plan_type="free",
            daily_limit=1,
            monthly_limit=5,
            min_hours_between_notifications=24,
            notifications_sent_today=1,
            notifications_sent_this_month=3,
            reset_daily_at=past,
            reset_monthly_at=future,
        )
    )
    db_session.commit()

    with patch("app.tasks.quota.SessionLocal", side_effect=task_session_factory):
        result = reset_notification_counters.run()

    assert result == {"daily_resets": 1, "monthly_resets": 0}
    db_session.expire_all()
    limit = db_session.query(OrganizationNotificationLimit).one()
    assert limit.notifications_sent_today == 0
    assert limit.notifications_sent_this_month == 3

"""Tests for the dispatch batcher."""
from __future__ import annotations

import uuid

import pytest
from sqlalchemy import select, update
from sqlalchemy.exc import OperationalError

from app.db.models import (
    NotificationStatus,
    OrganizationNotificationLimit,
    PushNotification,
    PushNotificationRecipient,
    PushSubscription,
)
from app.services.dispatch import NotificationDispatcher
from app.services.notifications import InvalidTransitionError, NotificationService
from app.services.quota import NotificationQuotaService
from app.services.push_gateway import (
    Delivered,
    PushTransportError,
    RejectedPermanent,
    RejectedTransient,
)
from app.utils.exceptions import ConflictError, DispatchError, NotFoundError


@pytest.fixture()
def draft(db_session, owner):
    return NotificationService(db_session).create_draft(owner, title="Sale", body="20% off today")


@pytest.fixture()
def dispatcher(db_session, push_client):
    return NotificationDispatcher(db_session, push_client)


def _quota(db_session, organization_id) -> OrganizationNotificationLimit:
    db_session.expire_all()
    return db_session.scalar(
        select(OrganizationNotificationLimit).where(
            OrganizationNotificationLimit.organization_id == organization_id
        )
    )


def test_dispatch_delivers_to_every_active_token(db_session, dispatcher, push_client, organization, draft, enroll_member):
    enroll_member(organization, tokens=1)
    enroll_member(organization, tokens=1, inactive_tokens=1)
    enroll_member(organization, tokens=0)

    result = dispatcher.dispatch(organization.id, draft.id)

    assert (result.sent_count, result.failed_count, result.total) == (2, 0, 2)
    notification = db_session.get(PushNotification, draft.id)
    assert notification.status == NotificationStatus.SENT.value
    assert (notification.sent_count, notification.failed_count) == (2, 0)
    assert notification.sent_at is not None

    message = push_client.messages[0]
    assert message.title == "Sale"
    assert message.body == "20% off today"
    assert message.data == {
        "notification_id": str(draft.id),
        "organization_id": str(organization.id),
        "route": "/(tabs)",
    }

    quota = _quota(db_session, organization.id)
    assert quota.notifications_sent_today == 1
    assert quota.notifications_sent_this_month == 1


def test_inactive_memberships_are_not_in_the_audience(db_session, dispatcher, push_client, organization, draft, enroll_member):
    enroll_member(organization, tokens=2, membership_active=False)

    result = dispatcher.dispatch(organization.id, draft.id)

    assert result.total == 0
    assert push_client.batches == []


def test_empty_audience_completes_as_sent(db_session, dispatcher, push_client, organization, draft):
    result = dispatcher.dispatch(organization.id, draft.id)

    assert (result.sent_count, result.failed_count, result.total) == (0, 0, 0)
    assert push_client.batches == []
    notification = db_session.get(PushNotification, draft.id)
    assert notification.status == NotificationStatus.SENT.value
    assert _quota(db_session, organization.id).notifications_sent_today == 1


def test_transport_failure_only_fails_its_batch(db_session, dispatcher, push_client, organization, draft, enroll_member):
    for _ in range(125):
        enroll_member(organization, tokens=2)

    def responder(batch_number, messages):
        if batch_number == 2:
            raise PushTransportError("Expo push service error 502")
        return [Delivered() for _ in messages]

    push_client.responder = responder

    result = dispatcher.dispatch(organization.id, draft.id)

    assert [len(batch) for batch in push_client.batches] == [100, 100, 50]
    assert (result.sent_count, result.failed_count, result.total) == (150, 100, 250)
    notification = db_session.get(PushNotification, draft.id)
    assert notification.status == NotificationStatus.SENT.value

    failed_rows = db_session.scalars(
        select(PushNotificationRecipient).where(PushNotificationRecipient.status == "failed")
    ).all()
    assert len(failed_rows) == 100
    assert all("502" in row.error_message for row in failed_rows)


def test_only_unregistered_devices_are_deactivated(db_session, dispatcher, push_client, organization, draft, enroll_member):
    enroll_member(organization, tokens=3)
    tokens = db_session.scalars(select(PushSubscription).order_by(PushSubscription.expo_push_token)).all()
    outcomes = {
        tokens[0].expo_push_token: Delivered(ticket_id="ok-1"),
        tokens[1].expo_push_token: RejectedPermanent(reason="DeviceNotRegistered"),
        tokens[2].expo_push_token: RejectedTransient(reason="MessageRateExceeded"),
    }
    push_client.responder = lambda batch_number, messages: [outcomes[message.to] for message in messages]

    result = dispatcher.dispatch(organization.id, draft.id)

    assert (result.sent_count, result.failed_count) == (1, 2)
    db_session.expire_all()
    states = {
        token.expo_push_token: token.is_active
        for token in db_session.scalars(select(PushSubscription)).all()
    }
    assert states == {
        tokens[0].expo_push_token: True,
        tokens[1].expo_push_token: False,
        tokens[2].expo_push_token: True,
    }
    reasons = sorted(
        row.error_message
        for row in db_session.scalars(select(PushNotificationRecipient)).all()
        if row.error_message
    )
    assert reasons == ["DeviceNotRegistered", "MessageRateExceeded"]


def test_all_messages_failing_still_consumes_quota(db_session, dispatcher, push_client, organization, draft, enroll_member):
    enroll_member(organization, tokens=2)

    def responder(batch_number, messages):
        raise PushTransportError("connection reset")

    push_client.responder = responder

    result = dispatcher.dispatch(organization.id, draft.id)

    assert (result.sent_count, result.failed_count, result.total) == (0, 2, 2)
    assert db_session.get(PushNotification, draft.id).status == NotificationStatus.SENT.value
    assert _quota(db_session, organization.id).notifications_sent_today == 1


def test_resend_is_rejected_without_double_counting(db_session, dispatcher, organization, draft, enroll_member):
    enroll_member(organization, tokens=1)
    dispatcher.dispatch(organization.id, draft.id)

    with pytest.raises(ConflictError):
        dispatcher.dispatch(organization.id, draft.id)

    notification = db_session.get(PushNotification, draft.id)
    assert notification.sent_count == 1
    assert _quota(db_session, organization.id).notifications_sent_today == 1


def test_unknown_notification_is_not_found(dispatcher, organization):
    with pytest.raises(NotFoundError):
        dispatcher.dispatch(organization.id, uuid.uuid4())


def test_ticket_mismatch_marks_notification_failed(db_session, dispatcher, push_client, organization, draft, enroll_member):
    enroll_member(organization, tokens=2)
    push_client.responder = lambda batch_number, messages: [Delivered()]

    with pytest.raises(DispatchError) as exc_info:
        dispatcher.dispatch(organization.id, draft.id)

    assert exc_info.value.kind == "dispatch_failed"
    db_session.expire_all()
    notification = db_session.get(PushNotification, draft.id)
    assert notification.status == NotificationStatus.FAILED.value
    assert notification.sent_at is not None
    assert _quota(db_session, organization.id).notifications_sent_today == 0


def test_notification_data_is_merged_into_payload(db_session, dispatcher, push_client, owner, organization, enroll_member):
    enroll_member(organization, tokens=1)
    draft = NotificationService(db_session).create_draft(
        owner, title="Double points", body="This weekend only", data={"campaign": "weekend"}
    )

    dispatcher.dispatch(organization.id, draft.id)

    assert push_client.messages[0].data["campaign"] == "weekend"
    assert push_client.messages[0].data["notification_id"] == str(draft.id)


def test_unexpected_client_error_fails_only_its_batch(db_session, dispatcher, push_client, organization, draft, enroll_member):
    enroll_member(organization, tokens=2)

    def responder(batch_number, messages):
        raise ConnectionResetError("peer reset")

    push_client.responder = responder

    result = dispatcher.dispatch(organization.id, draft.id)

    assert (result.sent_count, result.failed_count, result.total) == (0, 2, 2)
    db_session.expire_all()
    assert db_session.get(PushNotification, draft.id).status == NotificationStatus.SENT.value
    reasons = {row.error_message for row in db_session.scalars(select(PushNotificationRecipient)).all()}
    assert reasons == {"ConnectionResetError: peer reset"}


def test_unexpected_error_after_sending_marks_notification_failed(db_session, push_client, organization, draft):
    class BrokenAudience:
        def resolve(self, organization_id):
            raise RuntimeError("audience query exploded")

    dispatcher = NotificationDispatcher(db_session, push_client, audience_resolver=BrokenAudience())

    with pytest.raises(DispatchError) as exc_info:
        dispatcher.dispatch(organization.id, draft.id)

    assert isinstance(exc_info.value.__cause__, RuntimeError)
    db_session.expire_all()
    assert db_session.get(PushNotification, draft.id).status == NotificationStatus.FAILED.value
    assert push_client.batches == []
    assert _quota(db_session, organization.id).notifications_sent_today == 0


def test_quota_write_failure_keeps_sent_result(db_session, push_client, organization, draft, enroll_member):
    enroll_member(organization, tokens=1)

    class FailingQuota(NotificationQuotaService):
        def record_send(self, organization_id):
            raise OperationalError("UPDATE organization_notification_limits", {}, Exception("database is locked"))

    dispatcher = NotificationDispatcher(db_session, push_client, quota_service=FailingQuota(db_session))

    result = dispatcher.dispatch(organization.id, draft.id)

    assert (result.sent_count, result.failed_count) == (1, 0)
    db_session.expire_all()
    assert db_session.get(PushNotification, draft.id).status == NotificationStatus.SENT.value


@pytest.mark.parametrize(
    "source, target",
    [
        (NotificationStatus.SENT, NotificationStatus.DRAFT),
        (NotificationStatus.FAILED, NotificationStatus.SENDING),
        (NotificationStatus.DRAFT, NotificationStatus.SENT),
        (NotificationStatus.SENDING, NotificationStatus.DRAFT),
    ],
)
def test_transition_outside_table_is_rejected(db_session, draft, source, target):
    with pytest.raises(InvalidTransitionError):
        NotificationService(db_session).transition(draft.id, source, target)

    db_session.expire_all()
    assert db_session.get(PushNotification, draft.id).status == NotificationStatus.DRAFT.value


def test_concurrent_status_change_is_a_conflict(db_session, push_client, organization, draft, enroll_member):
    enroll_member(organization, tokens=1)

    class RacingNotifications(NotificationService):
        def get_dispatchable(self, organization_id, notification_id):
            notification = super().get_dispatchable(organization_id, notification_id)
            # Another worker claims the draft between the read and the conditional update.
            self.db.execute(
                update(PushNotification)
                .where(PushNotification.id == notification_id)
                .values(status=NotificationStatus.SENDING.value)
            )
            self.db.commit()
            return notification

    dispatcher = NotificationDispatcher(
        db_session, push_client, notification_service=RacingNotifications(db_session)
    )

    with pytest.raises(ConflictError):
        dispatcher.dispatch(organization.id, draft.id)

    assert push_client.batches == []
    db_session.expire_all()
    assert db_session.get(PushNotification, draft.id).status == NotificationStatus.SENDING.value
    assert _quota(db_session, organization.id).notifications_sent_today == 0

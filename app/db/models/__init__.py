"""Database models package."""
from app.db.models.organization import AppUser, Organization, UserRole
from app.db.models.beneficiary import Beneficiary, BeneficiaryOrganization
from app.db.models.push_subscription import PushSubscription
from app.db.models.notification import (
    NotificationStatus,
    PushNotification,
    PushNotificationRecipient,
    RecipientStatus,
)
from app.db.models.notification_limit import OrganizationNotificationLimit, PlanType

__all__ = [
    "AppUser",
    "Organization",
    "UserRole",
    "Beneficiary",
    "BeneficiaryOrganization",
    "PushSubscription",
    "NotificationStatus",
    "PushNotification",
    "PushNotificationRecipient",
    "RecipientStatus",
    "OrganizationNotificationLimit",
    "PlanType",
]

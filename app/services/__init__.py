"""Service layer package."""

from app.services.audience import AudienceMember, AudienceResolver
from app.services.dispatch import DispatchResult, NotificationDispatcher
from app.services.llm_service import LLMService
from app.services.moderation import ContentModerator, ModerationVerdict
from app.services.notifications import NotificationService
from app.services.push_gateway import ExpoPushClient
from app.services.push_tokens import PushTokenService
from app.services.quota import NotificationQuotaService, QuotaStatus

__all__ = [
    "AudienceMember",
    "AudienceResolver",
    "ContentModerator",
    "DispatchResult",
    "ExpoPushClient",
    "LLMService",
    "ModerationVerdict",
    "NotificationDispatcher",
    "NotificationQuotaService",
    "NotificationService",
    "PushTokenService",
    "QuotaStatus",
]

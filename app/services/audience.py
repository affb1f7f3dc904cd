"""Resolve who receives an organization's push notifications."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.db.models.beneficiary import BeneficiaryOrganization
from app.db.models.push_subscription import PushSubscription


@dataclass
class AudienceMember:
    beneficiary_id: UUID
    tokens: List[PushSubscription] = field(default_factory=list)


class AudienceResolver:
    """Active program members of an organization that own an active push token."""

    def __init__(self, db: Session):
        self.db = db

    def resolve(self, organization_id: UUID) -> List[AudienceMember]:
        rows = self.db.execute(
            select(BeneficiaryOrganization.beneficiary_id, PushSubscription)
            .join(
                PushSubscription,
                PushSubscription.beneficiary_id == BeneficiaryOrganization.beneficiary_id,
            )
            .where(
                BeneficiaryOrganization.organization_id == organization_id,
                BeneficiaryOrganization.is_active.is_(True),
                PushSubscription.is_active.is_(True),
            )
            .order_by(BeneficiaryOrganization.beneficiary_id, PushSubscription.created_at, PushSubscription.id)
        ).all()

        members: dict[UUID, AudienceMember] = {}
        for beneficiary_id, subscription in rows:
            member = members.setdefault(beneficiary_id, AudienceMember(beneficiary_id=beneficiary_id))
            member.tokens.append(subscription)
        return list(members.values())

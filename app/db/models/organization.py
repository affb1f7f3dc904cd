"""Organization and staff membership models."""
import enum
import uuid

from sqlalchemy import Column, DateTime, ForeignKey, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from app.db.base import Base


class UserRole(str, enum.Enum):
    """Roles a staff user can hold inside an organization."""

    OWNER = "owner"
    ADMIN = "admin"
    COLLABORATOR = "collaborator"


NOTIFICATION_MANAGER_ROLES = frozenset({UserRole.OWNER.value, UserRole.ADMIN.value})


class Organization(Base):
    """A business running a loyalty program."""

    __tablename__ = "organizations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class AppUser(Base):
    """Staff member of an organization who operates the admin dashboard."""

    __tablename__ = "app_users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    email = Column(String(255), unique=True, nullable=False, index=True)
    first_name = Column(String(100))
    last_name = Column(String(100))
    role = Column(String(20), nullable=False, default=UserRole.COLLABORATOR.value)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def can_manage_notifications(self) -> bool:
        return self.role in NOTIFICATION_MANAGER_ROLES

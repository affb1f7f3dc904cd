"""Create notification tables"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("timezone('utc', now())"), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("timezone('utc', now())"), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "organizations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "app_users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "organization_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("organizations.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=True),
        sa.Column("last_name", sa.String(length=100), nullable=True),
        sa.Column("role", sa.String(length=20), server_default=sa.text("'collaborator'"), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_app_users_email", "app_users", ["email"], unique=True)
    op.create_index("ix_app_users_organization_id", "app_users", ["organization_id"], unique=False)

    op.create_table(
        "beneficiaries",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=True),
        sa.Column("last_name", sa.String(length=100), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_beneficiaries_email", "beneficiaries", ["email"], unique=False)

    op.create_table(
        "beneficiary_organizations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "beneficiary_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("beneficiaries.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "organization_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("beneficiary_id", "organization_id", name="uq_beneficiary_organization"),
    )
    op.create_index(
        "ix_beneficiary_organizations_beneficiary_id", "beneficiary_organizations", ["beneficiary_id"], unique=False
    )
    op.create_index(
        "ix_beneficiary_organizations_organization_id", "beneficiary_organizations", ["organization_id"], unique=False
    )

    op.create_table(
        "push_tokens",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "beneficiary_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("beneficiaries.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("expo_push_token", sa.String(length=255), nullable=False),
        sa.Column("device_id", sa.String(length=255), nullable=True),
        sa.Column("platform", sa.String(length=20), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("beneficiary_id", "expo_push_token", name="uq_push_tokens_beneficiary_token"),
    )
    op.create_index("ix_push_tokens_beneficiary_id", "push_tokens", ["beneficiary_id"], unique=False)
    op.create_index("ix_push_tokens_is_active", "push_tokens", ["is_active"], unique=False)

    op.create_table(
        "push_notifications",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "organization_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "created_by",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("app_users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("title", sa.String(length=65), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("data", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(length=20), server_default=sa.text("'draft'"), nullable=False),
        sa.Column("sent_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("failed_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_push_notifications_organization_id", "push_notifications", ["organization_id"], unique=False)
    op.create_index("ix_push_notifications_status", "push_notifications", ["status"], unique=False)

    op.create_table(
        "push_notification_recipients",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "push_notification_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("push_notifications.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "beneficiary_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("beneficiaries.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "push_token_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("push_tokens.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("status", sa.String(length=20), server_default=sa.text("'pending'"), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_push_notification_recipients_push_notification_id",
        "push_notification_recipients",
        ["push_notification_id"],
        unique=False,
    )
    op.create_index(
        "ix_push_notification_recipients_beneficiary_id",
        "push_notification_recipients",
        ["beneficiary_id"],
        unique=False,
    )

    op.create_table(
        "organization_notification_limits",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "organization_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("plan_type", sa.String(length=20), server_default=sa.text("'free'"), nullable=False),
        sa.Column("daily_limit", sa.Integer(), server_default=sa.text("1"), nullable=False),
        sa.Column("monthly_limit", sa.Integer(), server_default=sa.text("5"), nullable=False),
        sa.Column("min_hours_between_notifications", sa.Integer(), server_default=sa.text("24"), nullable=False),
        sa.Column("notifications_sent_today", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("notifications_sent_this_month", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("last_notification_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reset_daily_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reset_monthly_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("organization_id", name="uq_organization_notification_limits_organization_id"),
        sa.CheckConstraint(
            "notifications_sent_today >= 0",
            name="ck_organization_notification_limits_sent_today_non_negative",
        ),
        sa.CheckConstraint(
            "notifications_sent_this_month >= 0",
            name="ck_organization_notification_limits_sent_this_month_non_negative",
        ),
    )


def downgrade() -> None:
    op.drop_table("organization_notification_limits")
    op.drop_index("ix_push_notification_recipients_beneficiary_id", table_name="push_notification_recipients")
    op.drop_index("ix_push_notification_recipients_push_notification_id", table_name="push_notification_recipients")
    op.drop_table("push_notification_recipients")
    op.drop_index("ix_push_notifications_status", table_name="push_notifications")
    op.drop_index("ix_push_notifications_organization_id", table_name="push_notifications")
    op.drop_table("push_notifications")
    op.drop_index("ix_push_tokens_is_active", table_name="push_tokens")
    op.drop_index("ix_push_tokens_beneficiary_id", table_name="push_tokens")
    op.drop_table("push_tokens")
    op.drop_index("ix_beneficiary_organizations_organization_id", table_name="beneficiary_organizations")
    op.drop_index("ix_beneficiary_organizations_beneficiary_id", table_name="beneficiary_organizations")
    op.drop_table("beneficiary_organizations")
    op.drop_index("ix_beneficiaries_email", table_name="beneficiaries")
    op.drop_table("beneficiaries")
    op.drop_index("ix_app_users_organization_id", table_name="app_users")
    op.drop_index("ix_app_users_email", table_name="app_users")
    op.drop_table("app_users")
    op.drop_table("organizations")

"""create_studio_ledger_tables

Revision ID: 3f9c2a71d0b4
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9c2a71d0b4'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

LIVE_SUBSCRIPTION = sa.text("status IN ('active', 'paused')")
LIVE_BOOKING = sa.text("status != 'cancelled'")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("role", sa.String(50), nullable=False, server_default="client"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "subscription_plans",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("monthly_classes", sa.Integer(), nullable=False),
        sa.Column("duration_days", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("monthly_price", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("category", sa.String(50), nullable=False, server_default="group"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint("monthly_classes >= 0", name="ck_subscription_plans_classes_non_negative"),
        sa.CheckConstraint("duration_days > 0", name="ck_subscription_plans_duration_positive"),
    )

    op.create_table(
        "subscriptions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("client_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column(
            "plan_id", sa.Uuid(), sa.ForeignKey("subscription_plans.id", ondelete="RESTRICT"), nullable=False
        ),
        sa.Column("status", sa.String(50), nullable=False, server_default="active"),
        sa.Column("remaining_classes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("start_date", sa.DateTime(), nullable=False),
        sa.Column("end_date", sa.DateTime(), nullable=False),
        sa.Column("paused_until", sa.DateTime(), nullable=True),
        sa.Column("status_reason", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("remaining_classes >= 0", name="ck_subscriptions_remaining_non_negative"),
    )
    op.create_index("ix_subscriptions_client_id", "subscriptions", ["client_id"])
    op.create_index("ix_subscriptions_plan_id", "subscriptions", ["plan_id"])
    op.create_index("ix_subscriptions_status", "subscriptions", ["status"])
    op.create_index(
        "uq_subscriptions_live_client_plan",
        "subscriptions",
        ["client_id", "plan_id"],
        unique=True,
        postgresql_where=LIVE_SUBSCRIPTION,
        sqlite_where=LIVE_SUBSCRIPTION,
    )

    op.create_table(
        "classes",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("instructor_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("starts_at", sa.DateTime(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False, server_default="50"),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("enrolled_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(50), nullable=False, server_default="scheduled"),
        *_timestamps(),
        sa.CheckConstraint("capacity > 0", name="ck_classes_capacity_positive"),
        sa.CheckConstraint(
            "enrolled_count >= 0 AND enrolled_count <= capacity",
            name="ck_classes_enrolled_within_capacity",
        ),
    )
    op.create_index("ix_classes_instructor_id", "classes", ["instructor_id"])
    op.create_index("ix_classes_starts_at", "classes", ["starts_at"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("client_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("class_id", sa.Uuid(), sa.ForeignKey("classes.id", ondelete="RESTRICT"), nullable=False),
        sa.Column(
            "subscription_id", sa.Uuid(), sa.ForeignKey("subscriptions.id", ondelete="RESTRICT"), nullable=False
        ),
        sa.Column("status", sa.String(50), nullable=False, server_default="confirmed"),
        sa.Column("cancelled_by", sa.String(50), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_bookings_client_id", "bookings", ["client_id"])
    op.create_index("ix_bookings_class_id", "bookings", ["class_id"])
    op.create_index("ix_bookings_subscription_id", "bookings", ["subscription_id"])
    op.create_index("ix_bookings_status", "bookings", ["status"])
    op.create_index(
        "uq_bookings_client_class_live",
        "bookings",
        ["client_id", "class_id"],
        unique=True,
        postgresql_where=LIVE_BOOKING,
        sqlite_where=LIVE_BOOKING,
    )

    op.create_table(
        "waitlist_entries",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("class_id", sa.Uuid(), sa.ForeignKey("classes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("client_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("class_id", "position", name="uq_waitlist_class_position"),
        sa.UniqueConstraint("class_id", "client_id", name="uq_waitlist_class_client"),
    )
    op.create_index("ix_waitlist_entries_class_id", "waitlist_entries", ["class_id"])
    op.create_index("ix_waitlist_entries_client_id", "waitlist_entries", ["client_id"])

    op.create_table(
        "client_activity_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("client_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("actor_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_client_activity_log_action_type", "client_activity_log", ["action_type"])
    op.create_index("ix_client_activity_log_client_created", "client_activity_log", ["client_id", "created_at"])


def downgrade() -> None:
    op.drop_table("client_activity_log")
    op.drop_table("waitlist_entries")
    op.drop_table("bookings")
    op.drop_table("classes")
    op.drop_table("subscriptions")
    op.drop_table("subscription_plans")
    op.drop_table("users")

"""Subscription model — a client's purchased plan and its class credits."""

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from studio_ledger.database import Base, TimestampMixin, UUIDPrimaryKeyMixin

_LIVE = text("status IN ('active', 'paused')")


class Subscription(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """One purchase of a plan by a client.

    ``remaining_classes`` is owned by the credit ledger service; nothing else
    writes it. Rows are never deleted, terminal statuses are kept for billing
    history.
    """

    __tablename__ = "subscriptions"

    client_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    plan_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("subscription_plans.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="active",
        index=True,
    )  # active, paused, cancelled, terminated, expired
    remaining_classes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    start_date: Mapped[datetime] = mapped_column(nullable=False)
    end_date: Mapped[datetime] = mapped_column(nullable=False)
    paused_until: Mapped[datetime | None] = mapped_column(nullable=True)
    status_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("remaining_classes >= 0", name="ck_subscriptions_remaining_non_negative"),
        # At most one live subscription per client per plan
        Index(
            "uq_subscriptions_live_client_plan",
            "client_id",
            "plan_id",
            unique=True,
            postgresql_where=_LIVE,
            sqlite_where=_LIVE,
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Subscription(id={self.id}, client_id={self.client_id}, status={self.status}, "
            f"remaining_classes={self.remaining_classes})>"
        )

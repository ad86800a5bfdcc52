"""Booking model — a client's seat in a class, paid with one credit."""

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column

from studio_ledger.database import Base, TimestampMixin, UUIDPrimaryKeyMixin

_NOT_CANCELLED = text("status != 'cancelled'")


class Booking(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A seat reservation drawn from one of the client's subscriptions."""

    __tablename__ = "bookings"

    client_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    class_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("classes.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    subscription_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("subscriptions.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="confirmed",
        index=True,
    )  # confirmed, cancelled, attended, no_show
    cancelled_by: Mapped[str | None] = mapped_column(String(50), nullable=True)  # client, reception, studio
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        # One live booking per client per class
        Index(
            "uq_bookings_client_class_live",
            "client_id",
            "class_id",
            unique=True,
            postgresql_where=_NOT_CANCELLED,
            sqlite_where=_NOT_CANCELLED,
        ),
    )

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, class_id={self.class_id}, client_id={self.client_id}, status={self.status})>"

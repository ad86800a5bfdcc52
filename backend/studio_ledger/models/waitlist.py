"""Waitlist model — FIFO queue of clients waiting for a full class."""

import uuid

from sqlalchemy import ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from studio_ledger.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class WaitlistEntry(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A client's place in a class queue.

    Positions only grow. Removing an entry leaves a gap; the next promotion
    simply takes the smallest position still present.
    """

    __tablename__ = "waitlist_entries"

    class_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("classes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("class_id", "position", name="uq_waitlist_class_position"),
        UniqueConstraint("class_id", "client_id", name="uq_waitlist_class_client"),
    )

    def __repr__(self) -> str:
        return f"<WaitlistEntry(class_id={self.class_id}, client_id={self.client_id}, position={self.position})>"

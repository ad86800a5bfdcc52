"""Activity log model — append-only audit trail per client."""

import uuid
from datetime import datetime

from sqlalchemy import JSON, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from studio_ledger.database import Base, utc_timestamp


class ActivityLogEntry(Base):
    """One recorded mutation. Rows are never updated or deleted.

    The integer primary key doubles as the insertion-order tie-break when
    two entries share a timestamp.
    """

    __tablename__ = "client_activity_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    client_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    actor_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )  # None for system actions
    action_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_timestamp, nullable=False)

    __table_args__ = (Index("ix_client_activity_log_client_created", "client_id", "created_at"),)

    def __repr__(self) -> str:
        return f"<ActivityLogEntry(id={self.id}, client_id={self.client_id}, action_type={self.action_type!r})>"

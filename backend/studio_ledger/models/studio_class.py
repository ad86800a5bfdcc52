"""Class model — a scheduled session with a fixed number of spots."""

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from studio_ledger.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class StudioClass(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A scheduled class.

    ``enrolled_count`` always equals the number of confirmed or attended
    bookings; only the booking and waitlist services change it.
    """

    __tablename__ = "classes"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    instructor_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    starts_at: Mapped[datetime] = mapped_column(nullable=False, index=True)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=50)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    enrolled_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="scheduled")  # scheduled, cancelled

    __table_args__ = (
        CheckConstraint("capacity > 0", name="ck_classes_capacity_positive"),
        CheckConstraint(
            "enrolled_count >= 0 AND enrolled_count <= capacity",
            name="ck_classes_enrolled_within_capacity",
        ),
    )

    @property
    def spots_left(self) -> int:
        return self.capacity - self.enrolled_count

    def __repr__(self) -> str:
        return f"<StudioClass(id={self.id}, name={self.name!r}, enrolled={self.enrolled_count}/{self.capacity})>"

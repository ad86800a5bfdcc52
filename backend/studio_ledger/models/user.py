"""User model — read-only view of the studio's people (clients and staff)."""

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from studio_ledger.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class User(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A client, instructor, or front-desk account.

    Accounts are managed by the auth service; the engine only looks them up
    to authorise actors and to check that a booking's client exists.
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    role: Mapped[str] = mapped_column(String(50), default="client", nullable=False)  # client, instructor, reception, admin
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} role={self.role!r}>"

"""Subscription plan model — what a client buys at the front desk."""

from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from studio_ledger.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class SubscriptionPlan(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A purchasable plan: a bundle of class credits valid for a number of days."""

    __tablename__ = "subscription_plans"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    monthly_classes: Mapped[int] = mapped_column(Integer, nullable=False)
    duration_days: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    monthly_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="group")  # group, personal
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("monthly_classes >= 0", name="ck_subscription_plans_classes_non_negative"),
        CheckConstraint("duration_days > 0", name="ck_subscription_plans_duration_positive"),
    )

    def __repr__(self) -> str:
        return f"<SubscriptionPlan(id={self.id}, name={self.name!r}, classes={self.monthly_classes})>"

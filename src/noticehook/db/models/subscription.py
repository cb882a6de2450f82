"""Subscription table: one row per registered webhook endpoint."""

from sqlalchemy import CheckConstraint, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from noticehook.db.base import Base, TimestampMixin
from noticehook.models.subscription import SubscriptionFilter


class SubscriptionRow(Base, TimestampMixin):
    __tablename__ = "subscriptions"

    endpoint: Mapped[str] = mapped_column(String(2000), primary_key=True)
    watermark: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    category: Mapped[str | None] = mapped_column(String(200), nullable=True)
    department: Mapped[str | None] = mapped_column(String(200), nullable=True)
    search: Mapped[str | None] = mapped_column(String(500), nullable=True)

    __table_args__ = (
        CheckConstraint("watermark >= 0", name="ck_subscriptions_watermark_non_negative"),
    )

    @property
    def filter(self) -> SubscriptionFilter:
        return SubscriptionFilter(
            category=self.category,
            department=self.department,
            search=self.search,
        )

"""SQLAlchemy ORM models - import all to register with Base.metadata."""

from noticehook.db.models.subscription import SubscriptionRow

__all__ = [
    "SubscriptionRow",
]

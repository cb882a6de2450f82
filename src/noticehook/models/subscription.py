"""Pydantic models for Subscription entity."""

from urllib.parse import urlencode

from pydantic import BaseModel, ConfigDict, Field

FILTER_FIELDS = ("category", "department", "search")


class SubscriptionFilter(BaseModel):
    """Request body for registering a webhook: any combination of the three fields."""

    model_config = ConfigDict(extra="forbid")

    category: str | None = Field(None, max_length=200)
    department: str | None = Field(None, max_length=200)
    search: str | None = Field(None, max_length=500)

    def to_query(self) -> str:
        """Serialize to the notice feed query string, skipping empty fields."""
        params = [(name, getattr(self, name)) for name in FILTER_FIELDS if getattr(self, name)]
        return urlencode(params)


class SubscriptionView(BaseModel):
    """Subscription as rendered on the HTTP surface."""

    webhook: str
    latest_id: int
    query_params: str
    category: str | None = None
    department: str | None = None
    search: str | None = None

    @classmethod
    def from_row(cls, row) -> "SubscriptionView":
        return cls(
            webhook=row.endpoint,
            latest_id=row.watermark,
            query_params=row.filter.to_query(),
            category=row.category,
            department=row.department,
            search=row.search,
        )

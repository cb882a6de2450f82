"""Pydantic models describing sync and sweep outcomes."""

from pydantic import BaseModel, Field


class DeliveryReport(BaseModel):
    """Outcome of one sync for a single subscription."""

    webhook: str
    delivered: int = 0
    previous_watermark: int
    watermark: int


class SweepSummary(BaseModel):
    """Outcome of one scheduled sweep across all subscriptions."""

    total: int = 0
    synced: int = 0
    failed: int = 0
    skipped: int = 0
    delivered: int = 0
    failures: dict[str, str] = Field(default_factory=dict)

"""Pydantic model for notices returned by the upstream feed."""

from pydantic import BaseModel, ConfigDict


class Notice(BaseModel):
    """A single published notice. Only ``id``, ``title`` and ``url`` drive delivery."""

    model_config = ConfigDict(extra="ignore")

    id: int
    title: str
    url: str
    category: str | None = None
    department: str | None = None
    content: str | None = None
    date: str | None = None

"""Data models shared across the digest pipeline."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ReviewRequestSummary(BaseModel):
    """One open merge request as fetched from GitLab.

    Instances are frozen: the pipeline derives display values from them but
    never changes the fetched data.

    Attributes:
        id: GitLab merge request ID (not shown in the digest)
        title: Merge request title
        url: Web URL of the merge request
        author: Author display name, None when the API omits it
        created_at: Creation time, None when the API omits it
    """

    model_config = ConfigDict(frozen=True)

    id: int | str = Field(description="Merge request ID")
    title: str = Field(default="", description="Merge request title")
    url: str = Field(default="", description="Merge request web URL")
    author: str | None = Field(default=None, description="Author display name")
    created_at: datetime | None = Field(default=None, description="Creation timestamp")

    @field_validator("created_at")
    @classmethod
    def ensure_aware(cls, v: datetime | None) -> datetime | None:
        """Treat naive timestamps as UTC."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @classmethod
    def from_api(cls, item: dict[str, Any]) -> ReviewRequestSummary:
        """Build a summary from a GitLab merge request object.

        Args:
            item: One element of the merge requests list response

        Returns:
            ReviewRequestSummary with the fields the digest needs
        """
        author = item.get("author") or {}
        return cls(
            id=item.get("id", ""),
            title=item.get("title") or "",
            url=item.get("web_url") or "",
            author=author.get("name") or None,
            created_at=item.get("created_at") or None,
        )

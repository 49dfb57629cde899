"""Shared fixtures for unit tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from itertools import count

import pytest

from reviewdigest.models import ReviewRequestSummary

NOW = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    """Fixed reference time for staleness calculations."""
    return NOW


@pytest.fixture
def make_mr():
    """Factory building merge request summaries of a given age."""
    ids = count(1)

    def _make(
        title: str = "Merge request",
        age: timedelta | None = timedelta(hours=1),
        author: str | None = "Jane Doe",
    ) -> ReviewRequestSummary:
        mr_id = next(ids)
        return ReviewRequestSummary(
            id=mr_id,
            title=title,
            url=f"https://gitlab.example.com/group/project/-/merge_requests/{mr_id}",
            author=author,
            created_at=NOW - age if age is not None else None,
        )

    return _make

"""Slack digest rendering for open merge requests."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone

from reviewdigest.models import ReviewRequestSummary
from reviewdigest.staleness import classify

EMPTY_DIGEST = "✅ No open merge requests"
DIGEST_HEADER = "*Open Merge Requests:*"
UNKNOWN_AUTHOR = "unknown"


def escape_mrkdwn(text: str) -> str:
    """Escape the characters Slack treats as markup control characters."""
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def sort_by_age(requests: Sequence[ReviewRequestSummary]) -> list[ReviewRequestSummary]:
    """Order merge requests oldest first.

    Requests without a creation time compare neither before nor after any
    other entry, so they keep their original positions; the timestamped
    requests are sorted (stably) into the remaining positions.

    Args:
        requests: Merge requests in fetch order

    Returns:
        New list in digest order
    """
    ordered = list(requests)
    slots = [i for i, mr in enumerate(ordered) if mr.created_at is not None]
    timed = sorted((ordered[i] for i in slots), key=lambda mr: mr.created_at)
    for slot, mr in zip(slots, timed):
        ordered[slot] = mr
    return ordered


def format_line(mr: ReviewRequestSummary, now: datetime) -> str:
    """Render one digest bullet line (without trailing newline)."""
    title = escape_mrkdwn(mr.title).replace("|", "¦")
    author = escape_mrkdwn(mr.author) if mr.author else UNKNOWN_AUTHOR
    age = classify(mr.created_at, now).label
    return f"• <{mr.url}|{title}> - {author} *{age}*"


def format_digest(
    requests: Sequence[ReviewRequestSummary],
    now: datetime | None = None,
) -> str:
    """Render the digest message posted to Slack.

    Args:
        requests: Open merge requests, in any order
        now: Reference time for staleness (defaults to current UTC time)

    Returns:
        The message text. An empty input yields EMPTY_DIGEST.
    """
    if not requests:
        return EMPTY_DIGEST

    if now is None:
        now = datetime.now(timezone.utc)

    lines = [DIGEST_HEADER]
    lines.extend(format_line(mr, now) for mr in sort_by_age(requests))
    return "\n".join(lines) + "\n"

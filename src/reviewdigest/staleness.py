"""Staleness classification of open merge requests.

A merge request's age is bucketed into a tier with an escalating glyph, so the
digest itself works as the alert for reviews left waiting too long:

    age < 1 minute   just now
    age < 1 hour     {minutes}m
    age < 24 hours   {hours}h
    days <= 2        {d}d
    days == 3        {d}d ❓
    days 4-5         {d}d 😳
    days > 5         {d}d 💀

Day tiers include the hour remainder when it is not zero: "4d 7h 😳".
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum


class StalenessTier(str, Enum):
    """Severity buckets by merge request age."""

    UNKNOWN = "unknown"
    JUST_NOW = "just_now"
    MINUTES = "minutes"
    HOURS = "hours"
    DAYS = "days"
    QUESTIONABLE = "questionable"
    ALARMING = "alarming"
    DEAD = "dead"


TIER_GLYPHS: dict[StalenessTier, str] = {
    StalenessTier.QUESTIONABLE: "❓",
    StalenessTier.ALARMING: "😳",
    StalenessTier.DEAD: "💀",
}

# Upper bounds (inclusive, in whole days) of the day tiers
_DAY_TIERS: list[tuple[int, StalenessTier]] = [
    (2, StalenessTier.DAYS),
    (3, StalenessTier.QUESTIONABLE),
    (5, StalenessTier.ALARMING),
]

UNKNOWN_LABEL = "unknown"


@dataclass(frozen=True)
class Staleness:
    """Classification result for one merge request.

    Attributes:
        age: Elapsed time since creation, None when unknown
        tier: Severity bucket
        glyph: Warning glyph for the tier, empty when none applies
        label: Rendered text shown in the digest
    """

    age: timedelta | None
    tier: StalenessTier
    glyph: str
    label: str


def _day_tier(days: int) -> StalenessTier:
    for upper, tier in _DAY_TIERS:
        if days <= upper:
            return tier
    return StalenessTier.DEAD


def classify(created_at: datetime | None, now: datetime | None = None) -> Staleness:
    """Classify how stale a merge request is.

    Args:
        created_at: Creation time of the merge request, or None if unknown
        now: Reference time (defaults to the current UTC time)

    Returns:
        Staleness with the age, tier, glyph and rendered label
    """
    if created_at is None:
        return Staleness(age=None, tier=StalenessTier.UNKNOWN, glyph="", label=UNKNOWN_LABEL)

    if now is None:
        now = datetime.now(timezone.utc)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)

    age = now - created_at

    if age < timedelta(minutes=1):
        return Staleness(age=age, tier=StalenessTier.JUST_NOW, glyph="", label="just now")
    if age < timedelta(hours=1):
        minutes = int(age.total_seconds() // 60)
        return Staleness(age=age, tier=StalenessTier.MINUTES, glyph="", label=f"{minutes}m")
    if age < timedelta(hours=24):
        hours = int(age.total_seconds() // 3600)
        return Staleness(age=age, tier=StalenessTier.HOURS, glyph="", label=f"{hours}h")

    total_hours = int(age.total_seconds() // 3600)
    days, hours = divmod(total_hours, 24)
    tier = _day_tier(days)
    glyph = TIER_GLYPHS.get(tier, "")

    parts = [f"{days}d"]
    if hours:
        parts.append(f"{hours}h")
    if glyph:
        parts.append(glyph)

    return Staleness(age=age, tier=tier, glyph=glyph, label=" ".join(parts))


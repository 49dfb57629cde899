"""Integration modules for external systems."""

from __future__ import annotations

from reviewdigest.integrations.gitlab import FetchError, GitLabClient
from reviewdigest.integrations.slack import DeliveryError, SlackWebhookClient

__all__ = [
    "DeliveryError",
    "FetchError",
    "GitLabClient",
    "SlackWebhookClient",
]

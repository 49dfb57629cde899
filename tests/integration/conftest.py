"""Pytest fixtures for integration tests.

HTTP endpoints (GitLab, Slack, Telegram, the Go playground) are mocked with
respx, so the real httpx clients are exercised end to end without network
access.
"""

from __future__ import annotations

import pytest

from reviewdigest.config import DigestConfig, GitLabConfig, LoggingConfig, ScheduleConfig, SlackConfig

GITLAB_URL = "https://gitlab.example.com"
WEBHOOK_URL = "https://hooks.slack.com/services/T000/B000/XXXX"


@pytest.fixture
def gitlab_config() -> GitLabConfig:
    return GitLabConfig(base_url=GITLAB_URL, token="glpat-test", project_id="42")


@pytest.fixture
def slack_config() -> SlackConfig:
    return SlackConfig(webhook_url=WEBHOOK_URL)


@pytest.fixture
def digest_config(gitlab_config: GitLabConfig, slack_config: SlackConfig) -> DigestConfig:
    return DigestConfig(
        gitlab=gitlab_config,
        slack=slack_config,
        schedule=ScheduleConfig(),
        logging=LoggingConfig(),
    )


@pytest.fixture
def make_api_mr():
    """Factory for merge request objects as returned by the GitLab API."""

    def _make(iid: int, created_at: str | None = "2024-03-08T12:00:00.000Z", author: str | None = "Jane Doe"):
        item = {
            "id": 1000 + iid,
            "iid": iid,
            "title": f"MR {iid}",
            "state": "opened",
            "web_url": f"{GITLAB_URL}/group/project/-/merge_requests/{iid}",
            "created_at": created_at,
        }
        if author is not None:
            item["author"] = {"id": 1, "username": "jdoe", "name": author}
        return item

    return _make

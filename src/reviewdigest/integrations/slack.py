"""Slack incoming webhook client for posting digests."""

from __future__ import annotations

from typing import Any

import httpx

from reviewdigest.config import SlackConfig
from reviewdigest.logging import get_logger


class DeliveryError(Exception):
    """Raised when the Slack webhook does not accept a message.

    Attributes:
        status_code: HTTP status of the response, None for transport errors
        response_text: Start of the response body, if any
    """

    def __init__(self, message: str, status_code: int | None = None, response_text: str = "") -> None:
        self.status_code = status_code
        self.response_text = response_text
        super().__init__(message)


class SlackWebhookClient:
    """Client posting plain text messages to a Slack incoming webhook."""

    def __init__(self, config: SlackConfig) -> None:
        self.config = config
        self.logger = get_logger(__name__)
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> SlackWebhookClient:
        self._client = httpx.AsyncClient(timeout=self.config.timeout_seconds)
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.timeout_seconds)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def post_message(self, text: str) -> None:
        """Post a message to the webhook.

        Args:
            text: Message text (Slack mrkdwn)

        Raises:
            DeliveryError: On transport errors or any non-2xx status
        """
        client = await self._get_client()
        try:
            response = await client.post(
                self.config.webhook_url,
                json={"text": text},
                headers={"Content-Type": "application/json"},
            )
        except httpx.RequestError as e:
            self.logger.error("slack_webhook_error", error=str(e))
            raise DeliveryError(f"Slack webhook request failed: {e}") from e

        if not response.is_success:
            self.logger.warning(
                "slack_webhook_failed",
                status_code=response.status_code,
                response_text=response.text[:200],
            )
            raise DeliveryError(
                f"Slack webhook status: {response.status_code}",
                status_code=response.status_code,
                response_text=response.text[:200],
            )

        self.logger.info(
            "slack_message_posted",
            status_code=response.status_code,
            length=len(text),
        )

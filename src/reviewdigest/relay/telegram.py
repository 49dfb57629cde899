"""Minimal Telegram Bot API client for long polling and replies."""

from __future__ import annotations

from typing import Any

import httpx
import structlog

logger = structlog.get_logger(__name__)


class TelegramError(Exception):
    """Raised when the Bot API request fails or reports ok=false."""

    pass


class TelegramClient:
    """Async client covering getUpdates and sendMessage.

    Attributes:
        poll_timeout_seconds: Long-poll timeout passed to getUpdates
    """

    def __init__(
        self,
        bot_token: str,
        api_base_url: str = "https://api.telegram.org",
        poll_timeout_seconds: int = 60,
        request_timeout_seconds: int = 30,
    ) -> None:
        self._base_url = f"{api_base_url.rstrip('/')}/bot{bot_token}"
        self.poll_timeout_seconds = poll_timeout_seconds
        self.request_timeout_seconds = request_timeout_seconds
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> TelegramClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(self.request_timeout_seconds),
        )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _call(self, method: str, payload: dict[str, Any], timeout: float | None = None) -> Any:
        if self._client is None:
            raise RuntimeError("TelegramClient must be used as async context manager")

        kwargs: dict[str, Any] = {"json": payload}
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            response = await self._client.post(f"/{method}", **kwargs)
        except httpx.RequestError as e:
            raise TelegramError(f"{method} request failed: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            raise TelegramError(f"{method} returned status {response.status_code}") from e

        if not isinstance(body, dict):
            raise TelegramError(f"{method} returned status {response.status_code} with unexpected body")

        if not response.is_success or not body.get("ok"):
            raise TelegramError(
                f"{method} failed ({response.status_code}): {body.get('description', '')}"
            )
        return body.get("result")

    async def get_updates(self, offset: int | None = None) -> list[dict[str, Any]]:
        """Long-poll for new updates.

        Args:
            offset: Identifier of the first update to return

        Returns:
            List of update objects, possibly empty
        """
        payload: dict[str, Any] = {
            "timeout": self.poll_timeout_seconds,
            "allowed_updates": ["message"],
        }
        if offset is not None:
            payload["offset"] = offset
        # The HTTP timeout has to outlast the long poll itself
        result = await self._call(
            "getUpdates",
            payload,
            timeout=self.poll_timeout_seconds + self.request_timeout_seconds,
        )
        return result or []

    async def send_message(self, chat_id: int | str, text: str, reply_to: int | None = None) -> None:
        """Send a text message to a chat."""
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if reply_to is not None:
            payload["reply_to_message_id"] = reply_to
        await self._call("sendMessage", payload)
        logger.debug("telegram_message_sent", chat_id=chat_id, length=len(text))

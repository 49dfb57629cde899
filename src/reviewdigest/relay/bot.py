"""Relay bot: runs code posted in chat on the Go playground.

A chat message starting with the trigger (``/run`` by default) is treated as
Go source code. The code is sent to the playground once and the output, or
the compile errors, are posted back as a reply. There is no retry and no
state beyond the update offset.
"""

from __future__ import annotations

import asyncio
import signal
from typing import Any, Protocol

import structlog

from reviewdigest.config import RelayConfig
from reviewdigest.relay.playground import PlaygroundClient, PlaygroundError
from reviewdigest.relay.telegram import TelegramClient, TelegramError

logger = structlog.get_logger(__name__)

NO_OUTPUT = "(no output)"
POLL_ERROR_PAUSE_SECONDS = 5.0
# Bot API limit for the text of one message
MAX_MESSAGE_LENGTH = 4096


class CodeRunner(Protocol):
    async def run(self, code: str) -> str: ...


class ChatClient(Protocol):
    async def get_updates(self, offset: int | None = None) -> list[dict[str, Any]]: ...

    async def send_message(self, chat_id: int | str, text: str, reply_to: int | None = None) -> None: ...


def extract_code(text: str | None, trigger: str) -> str | None:
    """Return the code following the trigger, or None if there is none.

    Args:
        text: Raw message text
        trigger: Prefix marking a run request

    Returns:
        Code with the trigger stripped, None for other or empty messages
    """
    if not text or not text.startswith(trigger):
        return None
    rest = text[len(trigger):]
    if rest and not (rest[0].isspace() or rest[0] == "@"):
        return None
    # "/run@my_bot" is how Telegram addresses commands in group chats
    if rest.startswith("@"):
        parts = rest.split(None, 1)
        rest = parts[1] if len(parts) > 1 else ""
    code = rest.strip()
    return code or None


def split_reply(text: str, limit: int = MAX_MESSAGE_LENGTH) -> list[str]:
    """Split a reply into chunks Telegram accepts, preferring line breaks.

    Args:
        text: Full reply text
        limit: Maximum length of one chunk

    Returns:
        Chunks that concatenate back to ``text``
    """
    chunks: list[str] = []
    while len(text) > limit:
        cut = text.rfind("\n", 0, limit)
        cut = limit if cut <= 0 else cut + 1
        chunks.append(text[:cut])
        text = text[cut:]
    if text:
        chunks.append(text)
    return chunks


class RelayBot:
    """Polls chat updates and relays triggered messages to the runner."""

    def __init__(
        self,
        chat: ChatClient,
        runner: CodeRunner,
        trigger: str = "/run",
        error_pause_seconds: float = POLL_ERROR_PAUSE_SECONDS,
    ) -> None:
        self.chat = chat
        self.runner = runner
        self.trigger = trigger
        self.error_pause_seconds = error_pause_seconds
        self._offset: int | None = None
        self._stop_event = asyncio.Event()

    @property
    def offset(self) -> int | None:
        return self._offset

    def request_stop(self) -> None:
        self._stop_event.set()

    async def handle_update(self, update: dict[str, Any]) -> str | None:
        """Handle one update, replying if it carries a run request.

        Returns:
            The reply text sent, or None if the update was ignored
        """
        message = update.get("message") or {}
        code = extract_code(message.get("text"), self.trigger)
        if code is None:
            return None

        chat_id = (message.get("chat") or {}).get("id")
        if chat_id is None:
            return None

        logger.info("relay_run_requested", chat_id=chat_id, code_length=len(code))
        try:
            output = await self.runner.run(code)
            reply = output if output else NO_OUTPUT
        except PlaygroundError as e:
            reply = f"error: {e}"

        for chunk in split_reply(reply):
            await self.chat.send_message(chat_id, chunk, reply_to=message.get("message_id"))
        return reply

    async def poll_once(self) -> int:
        """Fetch one batch of updates and handle each of them.

        Returns:
            Number of updates received
        """
        updates = await self.chat.get_updates(self._offset)
        for update in updates:
            self._offset = update["update_id"] + 1
            try:
                await self.handle_update(update)
            except TelegramError as e:
                logger.error("relay_reply_failed", update_id=update["update_id"], error=str(e))
        return len(updates)

    async def run_forever(self) -> None:
        """Poll until a stop is requested."""
        logger.info("relay_started", trigger=self.trigger)
        while not self._stop_event.is_set():
            try:
                await self.poll_once()
            except TelegramError as e:
                logger.error("relay_poll_failed", error=str(e))
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.error_pause_seconds)
                except asyncio.TimeoutError:
                    pass
        logger.info("relay_stopped")


async def run_relay(config: RelayConfig) -> None:
    """Run the relay bot until SIGINT or SIGTERM."""
    async with TelegramClient(
        bot_token=config.bot_token,
        api_base_url=config.api_base_url,
        poll_timeout_seconds=config.poll_timeout_seconds,
        request_timeout_seconds=config.request_timeout_seconds,
    ) as chat, PlaygroundClient(
        config.playground_url, timeout_seconds=config.request_timeout_seconds
    ) as runner:
        bot = RelayBot(chat, runner, trigger=config.trigger)

        poller = asyncio.ensure_future(bot.run_forever())

        def shutdown() -> None:
            bot.request_stop()
            # A long poll in progress would otherwise hold shutdown for its full timeout
            poller.cancel()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, shutdown)

        try:
            await poller
        except asyncio.CancelledError:
            logger.info("relay_stopped")
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)

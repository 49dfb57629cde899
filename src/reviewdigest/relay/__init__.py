"""Chat relay running posted code on the Go playground."""

from __future__ import annotations

from reviewdigest.relay.bot import RelayBot, extract_code, run_relay, split_reply
from reviewdigest.relay.playground import PlaygroundClient, PlaygroundError
from reviewdigest.relay.telegram import TelegramClient, TelegramError

__all__ = [
    "PlaygroundClient",
    "PlaygroundError",
    "RelayBot",
    "TelegramClient",
    "TelegramError",
    "extract_code",
    "run_relay",
    "split_reply",
]

"""Go playground client used by the relay bot."""

from __future__ import annotations

from typing import Any

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = structlog.get_logger(__name__)


class PlaygroundError(Exception):
    """Raised when the playground cannot be reached or answers with an error status."""

    pass


class PlaygroundEvent(BaseModel):
    """One output event of a playground run."""

    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(default="", alias="Message")
    kind: str = Field(default="", alias="Kind")
    delay: int = Field(default=0, alias="Delay")


class PlaygroundResult(BaseModel):
    """Compile endpoint response."""

    model_config = ConfigDict(populate_by_name=True)

    errors: str = Field(default="", alias="Errors")
    events: list[PlaygroundEvent] | None = Field(default=None, alias="Events")

    def output(self) -> str:
        """Return the compile errors, or else everything written to stdout."""
        if self.errors:
            return self.errors
        return "".join(e.message for e in self.events or [] if e.kind == "stdout")


class PlaygroundClient:
    """Client for the playground compile endpoint."""

    def __init__(self, url: str, timeout_seconds: int = 30) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> PlaygroundClient:
        self._client = httpx.AsyncClient(timeout=self.timeout_seconds)
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def run(self, code: str) -> str:
        """Compile and run Go source code.

        Args:
            code: Program source

        Returns:
            Compile errors verbatim, or the program's stdout

        Raises:
            PlaygroundError: On transport errors, non-2xx statuses or malformed responses
        """
        if self._client is None:
            raise RuntimeError("PlaygroundClient must be used as async context manager")

        try:
            response = await self._client.post(self.url, data={"version": "2", "body": code})
        except httpx.RequestError as e:
            logger.error("playground_request_error", error=str(e))
            raise PlaygroundError(f"playground request failed: {e}") from e

        if not response.is_success:
            logger.warning("playground_request_failed", status_code=response.status_code)
            raise PlaygroundError(f"playground status: {response.status_code}")

        try:
            result = PlaygroundResult.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise PlaygroundError(f"unexpected playground response: {e}") from e

        logger.info(
            "playground_run_completed",
            has_errors=bool(result.errors),
            event_count=len(result.events or []),
        )
        return result.output()

"""Digest pipeline: one fetch, format and deliver run.

Each run ("tick") is independent. Nothing is carried over between ticks:
merge requests are fetched fresh, rendered and posted, and the outcome is
returned as a TickResult instead of being raised.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncContextManager, Protocol

from reviewdigest.config import DigestConfig
from reviewdigest.formatter import format_digest
from reviewdigest.integrations.gitlab import FetchError, GitLabClient
from reviewdigest.integrations.slack import DeliveryError, SlackWebhookClient
from reviewdigest.logging import bind_tick_context, clear_tick_context, get_logger
from reviewdigest.models import ReviewRequestSummary

logger = get_logger(__name__)


class MergeRequestSource(Protocol):
    async def list_open_merge_requests(
        self, project_id: str | None = None
    ) -> list[ReviewRequestSummary]: ...


class MessageSink(Protocol):
    async def post_message(self, text: str) -> None: ...


class TickStatus(str, Enum):
    """Outcome of one digest tick."""

    DELIVERED = "delivered"
    FETCH_FAILED = "fetch_failed"
    DELIVERY_FAILED = "delivery_failed"
    ERRORED = "errored"


@dataclass(frozen=True)
class TickResult:
    """Result of one digest tick.

    Attributes:
        status: Outcome of the tick
        started_at: When the tick began
        finished_at: When the tick ended
        request_count: Number of open merge requests fetched
        message: Rendered digest, None when fetching failed
        error: Error description for failed ticks
    """

    status: TickStatus
    started_at: datetime
    finished_at: datetime
    request_count: int = 0
    message: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == TickStatus.DELIVERED


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DigestPipeline:
    """Runs fetch, classify, format and deliver sequentially.

    Attributes:
        project_id: GitLab project whose merge requests are listed
    """

    def __init__(
        self,
        source_factory: Callable[[], AsyncContextManager[Any]],
        sink_factory: Callable[[], AsyncContextManager[Any]],
        project_id: str,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the pipeline.

        Args:
            source_factory: Returns an async context manager yielding a MergeRequestSource
            sink_factory: Returns an async context manager yielding a MessageSink
            project_id: GitLab project ID or path
            clock: Returns the current time (timezone-aware)
        """
        self.source_factory = source_factory
        self.sink_factory = sink_factory
        self.project_id = project_id
        self._clock = clock

    @classmethod
    def from_config(cls, config: DigestConfig) -> DigestPipeline:
        """Build a pipeline talking to GitLab and Slack."""
        return cls(
            source_factory=lambda: GitLabClient(config.gitlab),
            sink_factory=lambda: SlackWebhookClient(config.slack),
            project_id=config.gitlab.project_id,
        )

    async def _fetch(self) -> list[ReviewRequestSummary]:
        source: MergeRequestSource
        async with self.source_factory() as source:
            return await source.list_open_merge_requests(self.project_id)

    async def _deliver(self, text: str) -> None:
        sink: MessageSink
        async with self.sink_factory() as sink:
            await sink.post_message(text)

    async def run_once(self) -> TickResult:
        """Run one digest tick.

        A fetch failure posts nothing. Fetch and delivery errors are logged
        and returned in the result; they are never raised.

        Returns:
            TickResult describing the outcome
        """
        started_at = self._clock()
        bind_tick_context(tick_id=str(uuid.uuid4()))
        try:
            logger.info(
                "digest_tick_started",
                project_id=self.project_id,
                started_at=started_at.isoformat(),
            )

            try:
                requests = await self._fetch()
            except FetchError as e:
                logger.error("digest_fetch_failed", error=str(e), status_code=e.status_code)
                return TickResult(
                    status=TickStatus.FETCH_FAILED,
                    started_at=started_at,
                    finished_at=self._clock(),
                    error=str(e),
                )

            message = format_digest(requests, now=self._clock())

            try:
                await self._deliver(message)
            except DeliveryError as e:
                logger.error("digest_delivery_failed", error=str(e), status_code=e.status_code)
                return TickResult(
                    status=TickStatus.DELIVERY_FAILED,
                    started_at=started_at,
                    finished_at=self._clock(),
                    request_count=len(requests),
                    message=message,
                    error=str(e),
                )

            logger.info("digest_delivered", request_count=len(requests))
            return TickResult(
                status=TickStatus.DELIVERED,
                started_at=started_at,
                finished_at=self._clock(),
                request_count=len(requests),
                message=message,
            )
        finally:
            clear_tick_context()

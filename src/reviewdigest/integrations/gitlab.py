"""GitLab API client listing open merge requests."""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx

from reviewdigest.config import GitLabConfig
from reviewdigest.logging import get_logger
from reviewdigest.models import ReviewRequestSummary

logger = get_logger(__name__)

API_SUFFIX = "/api/v4"


class FetchError(Exception):
    """Raised when merge requests cannot be fetched from GitLab.

    Attributes:
        status_code: HTTP status of the failed response, None for transport errors
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


def api_base_url(base_url: str) -> str:
    """Return the v4 API root for a GitLab base URL."""
    base = base_url.rstrip("/")
    if not base.endswith(API_SUFFIX):
        base += API_SUFFIX
    return base


class GitLabClient:
    """Async client for the GitLab merge requests API.

    Must be used as an async context manager:

        >>> async with GitLabClient(config) as gitlab:
        ...     mrs = await gitlab.list_open_merge_requests()
    """

    def __init__(self, config: GitLabConfig) -> None:
        self.config = config
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> GitLabClient:
        self._client = httpx.AsyncClient(
            base_url=api_base_url(self.config.base_url),
            headers={"PRIVATE-TOKEN": self.config.token},
            timeout=httpx.Timeout(self.config.timeout_seconds),
        )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("GitLabClient must be used as async context manager")
        return self._client

    async def _get_page(self, path: str, page: int) -> httpx.Response:
        client = self._get_client()
        params = {"state": "opened", "per_page": self.config.per_page, "page": page}
        try:
            response = await client.get(path, params=params)
        except httpx.RequestError as e:
            logger.error("gitlab_request_error", page=page, error=str(e))
            raise FetchError(f"GitLab request failed: {e}") from e

        if not response.is_success:
            logger.error(
                "gitlab_request_failed",
                page=page,
                status_code=response.status_code,
                response_text=response.text[:200],
            )
            raise FetchError(
                f"GitLab returned status {response.status_code}",
                status_code=response.status_code,
            )
        return response

    async def list_open_merge_requests(self, project_id: str | None = None) -> list[ReviewRequestSummary]:
        """List every open merge request of a project.

        Pages are aggregated until GitLab reports no next page (or, when the
        X-Next-Page header is absent, until a short page is returned).

        Args:
            project_id: Project ID or path (defaults to the configured project)

        Returns:
            Merge requests in the order GitLab returned them

        Raises:
            FetchError: On transport errors, non-2xx responses or malformed payloads
        """
        project = project_id or self.config.project_id
        path = f"/projects/{quote(str(project), safe='')}/merge_requests"

        summaries: list[ReviewRequestSummary] = []
        page = 1
        while True:
            response = await self._get_page(path, page)
            try:
                items = response.json()
            except ValueError as e:
                raise FetchError("GitLab returned a non-JSON payload", response.status_code) from e
            if not isinstance(items, list):
                raise FetchError("GitLab returned an unexpected payload", response.status_code)

            try:
                summaries.extend(ReviewRequestSummary.from_api(item) for item in items)
            except (AttributeError, ValueError) as e:
                raise FetchError(f"Malformed merge request in page {page}: {e}") from e

            next_page = response.headers.get("X-Next-Page")
            if next_page is not None:
                has_more = next_page.strip() != ""
            else:
                has_more = len(items) >= self.config.per_page
            if not has_more:
                break

            if page >= self.config.max_pages:
                logger.warning(
                    "gitlab_page_limit_reached",
                    project_id=project,
                    max_pages=self.config.max_pages,
                    fetched=len(summaries),
                )
                break
            page += 1

        logger.info("merge_requests_fetched", project_id=project, count=len(summaries), pages=page)
        return summaries

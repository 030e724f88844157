"""Notion API client."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import TYPE_CHECKING, Any, TypeVar

import httpx

from workdesk.adapters.notion.models import NotionBlock, NotionPage

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from typing import Self

logger = logging.getLogger(__name__)

T = TypeVar("T")

NOTION_API_URL = "https://api.notion.com/v1"
NOTION_VERSION = "2022-06-28"

# Notion accepts at most 100 children per create/append request
MAX_CHILDREN_PER_REQUEST = 100
PAGE_SIZE = 100

# HTTP status codes that should trigger a retry
RETRYABLE_STATUS_CODES = {408, 409, 429, 500, 502, 503, 504}

# Default retry configuration
DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY = 1.0  # seconds
DEFAULT_MAX_DELAY = 30.0  # seconds
DEFAULT_JITTER = 0.1  # 10% jitter


class NotionClientError(Exception):
    """Base exception for Notion client errors."""

    def __init__(
        self, message: str, status_code: int | None = None, code: str | None = None
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class NotionAPIError(NotionClientError):
    """Notion answered with an error the client does not special-case."""


class NotionNotFoundError(NotionAPIError):
    """Object does not exist or the integration cannot see it."""


class NotionArchivedError(NotionAPIError):
    """Object (or one of its ancestors) is archived and cannot be edited."""


class NotionAuthError(NotionAPIError):
    """Token rejected or missing capabilities."""


class NotionRetryableError(NotionAPIError):
    """Error that can be retried."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: str | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code, code=code)
        self.retry_after = retry_after


class NotionRateLimitError(NotionRetryableError):
    """HTTP 429 from Notion."""


def _parse_retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def _error_from_response(response: httpx.Response, operation: str) -> NotionAPIError:
    """Map a non-2xx Notion response onto the client exception hierarchy."""
    status = response.status_code
    try:
        body = response.json()
    except ValueError:
        body = {}
    code = body.get("code") if isinstance(body, dict) else None
    detail = body.get("message") if isinstance(body, dict) else None
    detail = detail or response.text.strip()[:500]
    message = f"Notion API error {status} on {operation}: {detail}"

    if status == 404 or code == "object_not_found":
        return NotionNotFoundError(message, status_code=status, code=code)
    if status == 429 or code == "rate_limited":
        return NotionRateLimitError(
            message, status_code=status, code=code, retry_after=_parse_retry_after(response)
        )
    if status in (401, 403):
        return NotionAuthError(message, status_code=status, code=code)
    if status == 400 and "archived" in (detail or "").lower():
        return NotionArchivedError(message, status_code=status, code=code)
    if status in RETRYABLE_STATUS_CODES:
        return NotionRetryableError(message, status_code=status, code=code)
    return NotionAPIError(message, status_code=status, code=code)


def _is_retryable_error(exc: Exception) -> bool:
    """Check if an exception is retryable.

    Args:
        exc: The exception to check

    Returns:
        True if the error should be retried
    """
    if isinstance(exc, (httpx.ConnectError, httpx.TimeoutException)):
        return True
    return isinstance(exc, NotionRetryableError)


def _calculate_delay(attempt: int, base_delay: float, max_delay: float, jitter: float) -> float:
    """Calculate delay with exponential backoff and jitter.

    Args:
        attempt: Current attempt number (0-indexed)
        base_delay: Base delay in seconds
        max_delay: Maximum delay in seconds
        jitter: Jitter factor (0.1 = 10% random variation)

    Returns:
        Delay in seconds
    """
    delay = min(base_delay * (2**attempt), max_delay)
    jitter_amount = delay * jitter * random.random()
    return delay + jitter_amount


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    jitter: float = DEFAULT_JITTER,
    operation_name: str = "operation",
) -> T:
    """Execute an async function with exponential backoff retry.

    Only transport failures and retryable statuses (429, 5xx) are retried;
    a ``Retry-After`` header on a 429 overrides the computed delay.

    Args:
        func: Async function to execute
        max_retries: Maximum number of retry attempts
        base_delay: Base delay between retries in seconds
        max_delay: Maximum delay between retries
        jitter: Random jitter factor to add to delay
        operation_name: Name of operation for logging

    Returns:
        Result of the function

    Raises:
        NotionClientError: If all retries are exhausted
    """
    for attempt in range(max_retries + 1):
        try:
            return await func()
        except Exception as e:
            if not _is_retryable_error(e):
                raise

            if attempt == max_retries:
                logger.error(
                    "notion_retry_exhausted",
                    extra={
                        "operation": operation_name,
                        "attempts": attempt + 1,
                        "error": str(e),
                    },
                )
                if isinstance(e, NotionClientError):
                    raise
                raise NotionRetryableError(
                    f"{operation_name} failed after {attempt + 1} attempts: {e}"
                ) from e

            delay = _calculate_delay(attempt, base_delay, max_delay, jitter)
            retry_after = getattr(e, "retry_after", None)
            if retry_after is not None:
                delay = min(max(delay, retry_after), max_delay)
            logger.warning(
                "notion_retry_attempt",
                extra={
                    "operation": operation_name,
                    "attempt": attempt + 1,
                    "max_retries": max_retries,
                    "delay_seconds": round(delay, 2),
                    "error": str(e),
                },
            )
            await asyncio.sleep(delay)

    raise NotionClientError(f"{operation_name} failed")


def title_property(title: str) -> dict[str, Any]:
    return {"title": {"title": [{"type": "text", "text": {"content": title}}]}}


class NotionClient:
    """Async HTTP client for the Notion pages/blocks API."""

    def __init__(
        self,
        api_key: str,
        *,
        api_url: str = NOTION_API_URL,
        notion_version: str = NOTION_VERSION,
        timeout: float = 30.0,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_base_delay: float = DEFAULT_BASE_DELAY,
        retry_max_delay: float = DEFAULT_MAX_DELAY,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize Notion client.

        Args:
            api_key: Internal integration token
            api_url: Base URL for the Notion API
            notion_version: Value of the ``Notion-Version`` header
            timeout: Request timeout in seconds
            max_retries: Maximum number of retry attempts for transient failures
            retry_base_delay: Base delay between retries in seconds
            retry_max_delay: Maximum delay between retries in seconds
            transport: Optional httpx transport (tests)
        """
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.notion_version = notion_version
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.retry_max_delay = retry_max_delay
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> Self:
        """Enter async context."""
        self._client = httpx.AsyncClient(
            base_url=self.api_url,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Notion-Version": self.notion_version,
                "Content-Type": "application/json",
            },
            timeout=self.timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args: object) -> None:
        """Exit async context."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client."""
        if self._client is None:
            raise NotionClientError("Client not initialized. Use async context manager.")
        return self._client

    async def _request(
        self,
        method: str,
        path: str,
        *,
        operation_name: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        async def _send() -> dict[str, Any]:
            response = await self.client.request(method, path, json=json, params=params)
            if response.status_code >= 400:
                raise _error_from_response(response, f"{method} {path}")
            if not response.content:
                return {}
            return response.json()

        return await retry_with_backoff(
            _send,
            max_retries=self.max_retries,
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
            operation_name=operation_name,
        )

    async def retrieve_page(self, page_id: str) -> NotionPage:
        """Get a page object.

        Raises:
            NotionNotFoundError: The page was deleted or never shared with the integration
        """
        data = await self._request("GET", f"/pages/{page_id}", operation_name="retrieve_page")
        return NotionPage.model_validate(data)

    async def create_page(
        self,
        parent_id: str,
        title: str,
        children: list[dict[str, Any]] | None = None,
    ) -> NotionPage:
        """Create a page nested under ``parent_id``.

        Blocks beyond the per-request limit are appended after creation.
        """
        children = children or []
        payload: dict[str, Any] = {
            "parent": {"type": "page_id", "page_id": parent_id},
            "properties": title_property(title),
        }
        if children:
            payload["children"] = children[:MAX_CHILDREN_PER_REQUEST]

        data = await self._request("POST", "/pages", json=payload, operation_name="create_page")
        page = NotionPage.model_validate(data)
        logger.debug("notion_page_created", extra={"page_id": page.id, "parent_id": parent_id})

        remainder = children[MAX_CHILDREN_PER_REQUEST:]
        if remainder:
            await self.append_block_children(page.id, remainder)
        return page

    async def update_page(
        self,
        page_id: str,
        *,
        title: str | None = None,
        archived: bool | None = None,
    ) -> NotionPage:
        """Update a page's title and/or archived flag."""
        payload: dict[str, Any] = {}
        if title is not None:
            payload["properties"] = title_property(title)
        if archived is not None:
            payload["archived"] = archived

        data = await self._request(
            "PATCH", f"/pages/{page_id}", json=payload, operation_name="update_page"
        )
        return NotionPage.model_validate(data)

    async def list_block_children(self, block_id: str) -> list[NotionBlock]:
        """Get every child block of a page or block (handles pagination)."""
        blocks: list[NotionBlock] = []
        cursor: str | None = None

        while True:
            params: dict[str, Any] = {"page_size": PAGE_SIZE}
            if cursor:
                params["start_cursor"] = cursor
            data = await self._request(
                "GET",
                f"/blocks/{block_id}/children",
                params=params,
                operation_name="list_block_children",
            )
            blocks.extend(NotionBlock.from_api(item) for item in data.get("results", []))
            if not data.get("has_more"):
                break
            cursor = data.get("next_cursor")

        return blocks

    async def append_block_children(
        self, block_id: str, children: list[dict[str, Any]]
    ) -> list[NotionBlock]:
        """Append blocks, splitting into requests of at most 100 children."""
        appended: list[NotionBlock] = []
        for start in range(0, len(children), MAX_CHILDREN_PER_REQUEST):
            chunk = children[start : start + MAX_CHILDREN_PER_REQUEST]
            data = await self._request(
                "PATCH",
                f"/blocks/{block_id}/children",
                json={"children": chunk},
                operation_name="append_block_children",
            )
            appended.extend(NotionBlock.from_api(item) for item in data.get("results", []))
        return appended

    async def delete_block(self, block_id: str) -> None:
        await self._request("DELETE", f"/blocks/{block_id}", operation_name="delete_block")

    async def search_pages(self, query: str | None = None) -> list[NotionPage]:
        """Search every page shared with the integration (handles pagination)."""
        pages: list[NotionPage] = []
        cursor: str | None = None

        while True:
            payload: dict[str, Any] = {
                "filter": {"property": "object", "value": "page"},
                "page_size": PAGE_SIZE,
            }
            if query:
                payload["query"] = query
            if cursor:
                payload["start_cursor"] = cursor
            data = await self._request(
                "POST", "/search", json=payload, operation_name="search_pages"
            )
            pages.extend(
                NotionPage.model_validate(item)
                for item in data.get("results", [])
                if item.get("object", "page") == "page"
            )
            if not data.get("has_more"):
                break
            cursor = data.get("next_cursor")

        logger.info("notion_search_complete", extra={"count": len(pages)})
        return pages

    async def health_check(self) -> bool:
        """Check if the token is accepted.

        Returns:
            True if healthy
        """
        try:
            await self._request("GET", "/users/me", operation_name="health_check")
            return True
        except Exception as e:
            logger.warning("notion_health_check_failed", extra={"error": str(e)})
            return False

"""Result type, error taxonomy and error collection helpers for sync passes."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Generic, TypeVar

import httpx

from workdesk.adapters.notion.client import (
    NotionArchivedError,
    NotionClientError,
    NotionNotFoundError,
    NotionRetryableError,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from workdesk.adapters.notion.models import SyncReport

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SyncPrerequisiteError(Exception):
    """Sync cannot start: token or remote root missing, or root unreachable."""


class SerializationError(Exception):
    """An entity cannot be encoded into page blocks."""


class SyncErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    ARCHIVED = "archived"
    REMOTE = "remote"
    LOCAL = "local"


@dataclass(frozen=True)
class SyncError:
    kind: SyncErrorKind
    message: str
    operation: str
    retryable: bool = False

    def __str__(self) -> str:
        return f"{self.operation}: {self.message}"


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of one remote step; exactly one of value/error is meaningful."""

    value: T | None = None
    error: SyncError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> Result[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: SyncError) -> Result[T]:
        return cls(error=error)

    def unwrap(self) -> T:
        if self.error is not None:
            raise RuntimeError(f"unwrap on failed result: {self.error}")
        return self.value  # type: ignore[return-value]

    def unwrap_error(self) -> SyncError:
        if self.error is None:
            raise RuntimeError("unwrap_error on successful result")
        return self.error


def classify_exception(exc: BaseException, operation: str) -> SyncError:
    """Map an exception raised during a sync step onto the error taxonomy."""
    if isinstance(exc, NotionNotFoundError):
        return SyncError(SyncErrorKind.NOT_FOUND, str(exc), operation)
    if isinstance(exc, NotionArchivedError):
        return SyncError(SyncErrorKind.ARCHIVED, str(exc), operation)
    if isinstance(exc, NotionRetryableError):
        return SyncError(SyncErrorKind.REMOTE, str(exc), operation, retryable=True)
    if isinstance(exc, (httpx.TimeoutException, httpx.TransportError)):
        return SyncError(SyncErrorKind.REMOTE, str(exc), operation, retryable=True)
    if isinstance(exc, NotionClientError):
        return SyncError(SyncErrorKind.REMOTE, str(exc), operation)
    return SyncError(SyncErrorKind.LOCAL, str(exc) or type(exc).__name__, operation)


async def remote_call(operation: str, func: Callable[[], Awaitable[T]]) -> Result[T]:
    """Run one remote call and fold client/transport failures into a Result.

    Anything that is not a client or transport error propagates.
    """
    try:
        return Result.success(await func())
    except (NotionClientError, httpx.HTTPError) as exc:
        return Result.failure(classify_exception(exc, operation))


async def capture(
    func: Callable[[], Awaitable[Result[T]]],
    *,
    operation: str,
    correlation_id: str | None = None,
) -> Result[T]:
    """Turn a stray exception from one unit of work into a failed Result."""
    try:
        return await func()
    except Exception as exc:
        logger.exception(
            "notion_sync_step_crashed",
            extra={"correlation_id": correlation_id, "operation": operation},
        )
        return Result.failure(classify_exception(exc, operation))


def record_error(report: SyncReport, message: str, retryable: bool) -> None:
    if message not in report.errors:
        report.errors.append(message)
    if retryable:
        report.retryable_errors.append(message)
    else:
        report.permanent_errors.append(message)


def record_failure(report: SyncReport, error: SyncError, *, subject: str) -> None:
    record_error(report, f"{subject}: {error}", error.retryable)

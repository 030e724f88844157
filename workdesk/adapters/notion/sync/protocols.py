"""Protocol definitions (ports) for Notion sync.

The orchestration only talks to these, so the same engine runs against the
real client and SQLite store or against in-memory fakes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, TypeVar

if TYPE_CHECKING:
    from contextlib import AbstractAsyncContextManager

    from workdesk.adapters.notion.models import NotionBlock, NotionPage
    from workdesk.domain.models import (
        Chapter,
        Character,
        Episode,
        Setting,
        Synopsis,
        SyncTrackedRecord,
        Tag,
        TagCategory,
        Work,
    )

R = TypeVar("R", bound="SyncTrackedRecord")


class NotionClientProtocol(Protocol):
    async def health_check(self) -> bool: ...

    async def retrieve_page(self, page_id: str) -> NotionPage: ...

    async def create_page(
        self, parent_id: str, title: str, children: list[dict[str, Any]] | None = None
    ) -> NotionPage: ...

    async def update_page(
        self, page_id: str, *, title: str | None = None, archived: bool | None = None
    ) -> NotionPage: ...

    async def list_block_children(self, block_id: str) -> list[NotionBlock]: ...

    async def append_block_children(
        self, block_id: str, children: list[dict[str, Any]]
    ) -> list[NotionBlock]: ...

    async def delete_block(self, block_id: str) -> None: ...

    async def search_pages(self, query: str | None = None) -> list[NotionPage]: ...


class NotionClientFactory(Protocol):
    def __call__(self) -> AbstractAsyncContextManager[NotionClientProtocol]: ...


class RecordCollection(Protocol[R]):
    """One kind of record in the local store."""

    async def get_all(self) -> list[R]: ...

    async def get_by_id(self, record_id: str) -> R | None: ...

    async def put(self, record: R) -> None: ...

    async def delete(self, record_id: str) -> None: ...

    async def list_by_index(self, field: str, value: str) -> list[R]: ...


class LocalStore(Protocol):
    works: RecordCollection[Work]
    synopses: RecordCollection[Synopsis]
    characters: RecordCollection[Character]
    settings: RecordCollection[Setting]
    chapters: RecordCollection[Chapter]
    episodes: RecordCollection[Episode]
    tag_categories: RecordCollection[TagCategory]
    tags: RecordCollection[Tag]


class PageIdMapStore(Protocol):
    def load(self) -> dict[str, Any] | None: ...

    def save(self, blob: dict[str, Any]) -> None: ...

"""Idempotent create-or-update of a single Notion page."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from workdesk.adapters.notion.sync.errors import Result, SyncErrorKind, remote_call
from workdesk.adapters.notion.sync.serializer import normalize_blocks

if TYPE_CHECKING:
    from workdesk.adapters.notion.models import NotionBlock
    from workdesk.adapters.notion.sync.protocols import NotionClientProtocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UpsertOutcome:
    page_id: str
    created: bool = False
    title_updated: bool = False
    content_replaced: bool = False
    restored: bool = False

    @property
    def mutated(self) -> bool:
        return self.created or self.title_updated or self.content_replaced or self.restored


class PageUpserter:
    """Create a page, or bring an existing one in line with a title and blocks.

    ``blocks=None`` marks a container page whose content is left alone. A
    repeated call with the same arguments only reads.
    """

    def __init__(self, client: NotionClientProtocol, *, correlation_id: str | None = None) -> None:
        self._client = client
        self._correlation_id = correlation_id

    async def upsert(
        self,
        parent_id: str,
        existing_page_id: str | None,
        title: str,
        blocks: list[dict[str, Any]] | None,
    ) -> Result[UpsertOutcome]:
        if not existing_page_id:
            return await self._create(parent_id, title, blocks)

        retrieved = await remote_call(
            "retrieve_page", lambda: self._client.retrieve_page(existing_page_id)
        )
        if not retrieved.ok:
            error = retrieved.unwrap_error()
            if error.kind == SyncErrorKind.NOT_FOUND:
                logger.info(
                    "notion_page_missing_recreating",
                    extra={"correlation_id": self._correlation_id, "page_id": existing_page_id},
                )
                return await self._create(parent_id, title, blocks)
            return Result.failure(error)

        page = retrieved.unwrap()
        restored = False
        if page.is_archived:
            unarchived = await remote_call(
                "restore_page",
                lambda: self._client.update_page(existing_page_id, archived=False),
            )
            if not unarchived.ok:
                logger.warning(
                    "notion_page_restore_failed",
                    extra={
                        "correlation_id": self._correlation_id,
                        "page_id": existing_page_id,
                        "error": str(unarchived.error),
                    },
                )
                return await self._create(parent_id, title, blocks)
            page = unarchived.unwrap()
            restored = True
            logger.info(
                "notion_page_restored",
                extra={"correlation_id": self._correlation_id, "page_id": existing_page_id},
            )

        title_updated = False
        if page.title != title:
            renamed = await remote_call(
                "update_title", lambda: self._client.update_page(existing_page_id, title=title)
            )
            if not renamed.ok:
                return Result.failure(renamed.unwrap_error())
            title_updated = True

        content_replaced = False
        if blocks is not None:
            replaced = await self._sync_content(existing_page_id, blocks)
            if not replaced.ok:
                return Result.failure(replaced.unwrap_error())
            content_replaced = bool(replaced.value)

        return Result.success(
            UpsertOutcome(
                page_id=existing_page_id,
                title_updated=title_updated,
                content_replaced=content_replaced,
                restored=restored,
            )
        )

    async def _create(
        self, parent_id: str, title: str, blocks: list[dict[str, Any]] | None
    ) -> Result[UpsertOutcome]:
        created = await remote_call(
            "create_page", lambda: self._client.create_page(parent_id, title, blocks or [])
        )
        if not created.ok:
            return Result.failure(created.unwrap_error())
        page = created.unwrap()
        logger.debug(
            "notion_page_upsert_created",
            extra={"correlation_id": self._correlation_id, "page_id": page.id, "title": title},
        )
        return Result.success(UpsertOutcome(page_id=page.id, created=True))

    async def _sync_content(self, page_id: str, blocks: list[dict[str, Any]]) -> Result[bool]:
        listed = await remote_call(
            "list_block_children", lambda: self._client.list_block_children(page_id)
        )
        if not listed.ok:
            return Result.failure(listed.unwrap_error())

        content = [b for b in listed.unwrap() if not b.is_child_page]
        return await self._replace_blocks(page_id, content, blocks)

    async def _replace_blocks(
        self,
        page_id: str,
        current: list[NotionBlock],
        blocks: list[dict[str, Any]],
    ) -> Result[bool]:
        if normalize_blocks(current) == normalize_blocks(blocks):
            return Result.success(False)

        for block in current:
            deleted = await remote_call(
                "delete_block", lambda block_id=block.id: self._client.delete_block(block_id)
            )
            if not deleted.ok and deleted.error and deleted.error.kind != SyncErrorKind.NOT_FOUND:
                return Result.failure(deleted.error)

        if blocks:
            appended = await remote_call(
                "append_block_children",
                lambda: self._client.append_block_children(page_id, blocks),
            )
            if not appended.ok:
                return Result.failure(appended.unwrap_error())

        logger.debug(
            "notion_page_content_replaced",
            extra={
                "correlation_id": self._correlation_id,
                "page_id": page_id,
                "removed": len(current),
                "added": len(blocks),
            },
        )
        return Result.success(True)

    async def replace_trailing_section(
        self, page_id: str, marker: str, blocks: list[dict[str, Any]]
    ) -> Result[bool]:
        """Replace everything from the heading starting with ``marker`` to the end.

        Child pages inside the section are kept. Returns whether anything changed.
        """
        listed = await remote_call(
            "list_block_children", lambda: self._client.list_block_children(page_id)
        )
        if not listed.ok:
            return Result.failure(listed.unwrap_error())

        children = listed.unwrap()
        start = next(
            (
                i
                for i, b in enumerate(children)
                if b.type.startswith("heading_") and b.text.startswith(marker)
            ),
            len(children),
        )
        section = [b for b in children[start:] if not b.is_child_page]
        return await self._replace_blocks(page_id, section, blocks)

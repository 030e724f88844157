"""Notion -> local store pull."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from workdesk.adapters.notion.sync.constants import (
    CHARACTERS_CONTAINER,
    CHARACTERS_TITLE,
    SERIAL_CONTAINER,
    SERIAL_TITLE,
    SETTINGS_CONTAINER,
    SETTINGS_TITLE,
    SYNOPSIS_TITLE,
    TAGS_ROOT_SLOT,
    TAGS_TITLE,
    matches_title,
)
from workdesk.adapters.notion.sync.errors import (
    Result,
    SyncError,
    SyncErrorKind,
    record_failure,
    remote_call,
)
from workdesk.adapters.notion.sync.serializer import decode_payload
from workdesk.adapters.notion.sync.tree import ENTITY_NODE_KINDS, NodeKind, parse_episode_title
from workdesk.core.time_utils import utc_now
from workdesk.domain.models import ENTITY_MODELS, EntityKind

if TYPE_CHECKING:
    from collections.abc import Iterator

    from workdesk.adapters.notion.models import NotionBlock, SyncReport
    from workdesk.adapters.notion.sync.page_id_map import PageIdMap
    from workdesk.adapters.notion.sync.protocols import NotionClientProtocol
    from workdesk.domain.models import SyncTrackedRecord

logger = logging.getLogger(__name__)

# Legacy pages keep free text in a single body field
_BODY_FIELDS: dict[EntityKind, str] = {
    EntityKind.WORK: "description",
    EntityKind.CHARACTER: "description",
    EntityKind.SETTING: "description",
    EntityKind.EPISODE: "content",
}

_NAME_FIELDS: dict[EntityKind, str] = {
    EntityKind.WORK: "title",
    EntityKind.CHARACTER: "name",
    EntityKind.SETTING: "name",
    EntityKind.CHAPTER: "title",
    EntityKind.TAG_CATEGORY: "name",
    EntityKind.TAG: "name",
}

_CONTAINERS: tuple[tuple[str, NodeKind, str], ...] = (
    (CHARACTERS_TITLE, NodeKind.CHARACTERS, CHARACTERS_CONTAINER),
    (SETTINGS_TITLE, NodeKind.SETTINGS, SETTINGS_CONTAINER),
    (SERIAL_TITLE, NodeKind.SERIAL, SERIAL_CONTAINER),
)


def _same_id(a: str | None, b: str | None) -> bool:
    if not a or not b:
        return False
    return a.replace("-", "").lower() == b.replace("-", "").lower()


@dataclass(frozen=True)
class PageRef:
    id: str
    title: str


@dataclass(frozen=True)
class _PullContext:
    work_id: str | None = None
    chapter_id: str | None = None
    category_id: str | None = None
    position: int = 0


@dataclass
class PulledGraph:
    """Records rebuilt from the page tree, grouped by kind in discovery order."""

    records: dict[EntityKind, list[SyncTrackedRecord]] = field(default_factory=dict)

    def add(self, kind: EntityKind, record: SyncTrackedRecord) -> None:
        self.records.setdefault(kind, []).append(record)

    def of(self, kind: EntityKind) -> list[SyncTrackedRecord]:
        return list(self.records.get(kind, []))

    def items(self) -> Iterator[tuple[EntityKind, SyncTrackedRecord]]:
        for kind, records in self.records.items():
            for record in records:
                yield kind, record

    def __len__(self) -> int:
        return sum(len(r) for r in self.records.values())


class NotionPuller:
    """Rebuilds the local object graph by walking the page tree."""

    def __init__(
        self,
        client: NotionClientProtocol,
        page_map: PageIdMap,
        report: SyncReport,
        *,
        root_page_id: str,
        correlation_id: str | None = None,
    ) -> None:
        self._client = client
        self._page_map = page_map
        self._report = report
        self._root_page_id = root_page_id
        self._correlation_id = correlation_id
        self._graph = PulledGraph()
        self._search_results: list[PageRef] | None = None

    async def pull(self) -> PulledGraph:
        for ref in await self._discover_roots():
            await self.pull_node(NodeKind.ROOT, ref, _PullContext())

        tags_ref = await self._discover_tags_root()
        if tags_ref is not None:
            await self.pull_node(NodeKind.TAGS, tags_ref, _PullContext())

        self._page_map.flush()
        return self._graph

    async def pull_node(
        self,
        kind: NodeKind,
        ref: PageRef,
        context: _PullContext,
        blocks: list[NotionBlock] | None = None,
    ) -> None:
        """Decode the page for ``kind`` and recurse into its structural children."""
        if blocks is None:
            fetched = await self._fetch(ref)
            if not fetched.ok:
                self._fail(kind, ref, fetched.unwrap_error())
                return
            blocks = fetched.unwrap()

        content = [b for b in blocks if not b.is_child_page]
        children = [
            PageRef(id=b.id, title=b.text) for b in blocks if b.is_child_page and not b.archived
        ]

        if kind is NodeKind.ROOT:
            work = self._materialize(EntityKind.WORK, ref, content, context)
            if work is None:
                return
            context = replace(context, work_id=work.id)
            for child in children:
                if matches_title(child.title, SYNOPSIS_TITLE):
                    await self.pull_node(NodeKind.SYNOPSIS, child, context)
                    continue
                for title, container_kind, map_kind in _CONTAINERS:
                    if matches_title(child.title, title):
                        self._page_map.set(map_kind, work.id, child.id)
                        await self.pull_node(container_kind, child, context)
                        break

        elif kind in (NodeKind.SYNOPSIS, NodeKind.CHARACTER, NodeKind.SETTING, NodeKind.EPISODE):
            self._materialize(ENTITY_NODE_KINDS[kind], ref, content, context)

        elif kind is NodeKind.CHARACTERS:
            for position, child in enumerate(children, start=1):
                await self.pull_node(
                    NodeKind.CHARACTER, child, replace(context, position=position)
                )

        elif kind is NodeKind.SETTINGS:
            for position, child in enumerate(children, start=1):
                await self.pull_node(NodeKind.SETTING, child, replace(context, position=position))

        elif kind is NodeKind.SERIAL:
            for position, child in enumerate(children, start=1):
                fetched = await self._fetch(child)
                if not fetched.ok:
                    self._fail(NodeKind.EPISODE, child, fetched.unwrap_error())
                    continue
                child_blocks = fetched.unwrap()
                child_kind = self._serial_child_kind(child, child_blocks)
                await self.pull_node(
                    child_kind,
                    child,
                    replace(context, chapter_id=None, position=position),
                    child_blocks,
                )

        elif kind is NodeKind.CHAPTER:
            chapter = self._materialize(EntityKind.CHAPTER, ref, content, context)
            if chapter is None:
                return
            for position, child in enumerate(children, start=1):
                await self.pull_node(
                    NodeKind.EPISODE,
                    child,
                    replace(context, chapter_id=chapter.id, position=position),
                )

        elif kind is NodeKind.TAGS:
            self._page_map.set_root(TAGS_ROOT_SLOT, ref.id)
            for position, child in enumerate(children, start=1):
                await self.pull_node(
                    NodeKind.TAG_CATEGORY, child, replace(context, position=position)
                )

        elif kind is NodeKind.TAG_CATEGORY:
            category = self._materialize(EntityKind.TAG_CATEGORY, ref, content, context)
            if category is None:
                return
            for position, child in enumerate(children, start=1):
                await self.pull_node(
                    NodeKind.TAG,
                    child,
                    replace(context, category_id=category.id, position=position),
                )

        elif kind is NodeKind.TAG:
            self._materialize(EntityKind.TAG, ref, content, context)

        else:
            raise ValueError(f"unknown node kind: {kind}")

    async def _fetch(self, ref: PageRef) -> Result[list[NotionBlock]]:
        return await remote_call(
            "list_block_children", lambda: self._client.list_block_children(ref.id)
        )

    def _serial_child_kind(self, ref: PageRef, blocks: list[NotionBlock]) -> NodeKind:
        decoded = decode_payload([b for b in blocks if not b.is_child_page])
        if decoded is not None and decoded[0] is EntityKind.CHAPTER:
            return NodeKind.CHAPTER
        if decoded is not None and decoded[0] is EntityKind.EPISODE:
            return NodeKind.EPISODE
        if parse_episode_title(ref.title) is not None:
            return NodeKind.EPISODE
        return NodeKind.CHAPTER

    async def _search(self) -> list[PageRef]:
        if self._search_results is None:
            found = await remote_call("search_pages", self._client.search_pages)
            if not found.ok:
                record_failure(self._report, found.unwrap_error(), subject="root discovery")
                self._search_results = []
            else:
                self._search_results = [
                    PageRef(id=p.id, title=p.title)
                    for p in found.unwrap()
                    if not p.is_archived and _same_id(p.parent_page_id, self._root_page_id)
                ]
        return self._search_results

    async def _discover_roots(self) -> list[PageRef]:
        mapped = self._page_map.entries(EntityKind.WORK)
        if not mapped:
            refs = [r for r in await self._search() if not matches_title(r.title, TAGS_TITLE)]
            logger.info(
                "notion_pull_roots_from_search",
                extra={"correlation_id": self._correlation_id, "count": len(refs)},
            )
            return refs

        refs: list[PageRef] = []
        for work_id, page_id in mapped.items():
            retrieved = await remote_call(
                "retrieve_page", lambda page_id=page_id: self._client.retrieve_page(page_id)
            )
            if not retrieved.ok:
                error = retrieved.unwrap_error()
                if error.kind is SyncErrorKind.NOT_FOUND:
                    self._report.stats(EntityKind.WORK.value).skipped += 1
                    logger.info(
                        "notion_pull_root_missing",
                        extra={"correlation_id": self._correlation_id, "work_id": work_id},
                    )
                    continue
                self._fail(NodeKind.ROOT, PageRef(id=page_id, title=""), error)
                continue
            page = retrieved.unwrap()
            if page.is_archived:
                self._report.stats(EntityKind.WORK.value).skipped += 1
                continue
            refs.append(PageRef(id=page.id, title=page.title))
        return refs

    async def _discover_tags_root(self) -> PageRef | None:
        page_id = self._page_map.get_root(TAGS_ROOT_SLOT)
        if page_id:
            retrieved = await remote_call(
                "retrieve_page", lambda: self._client.retrieve_page(page_id)
            )
            if retrieved.ok and not retrieved.unwrap().is_archived:
                page = retrieved.unwrap()
                return PageRef(id=page.id, title=page.title)
            if not retrieved.ok:
                error = retrieved.unwrap_error()
                if error.kind is not SyncErrorKind.NOT_FOUND:
                    record_failure(self._report, error, subject="tags root")
                    return None
        for ref in await self._search():
            if matches_title(ref.title, TAGS_TITLE):
                return ref
        return None

    def _materialize(
        self,
        kind: EntityKind,
        ref: PageRef,
        content: list[NotionBlock],
        context: _PullContext,
    ) -> SyncTrackedRecord | None:
        decoded = decode_payload(content)
        fields: dict[str, Any] = dict(decoded[1]) if decoded else {}
        legacy = decoded is not None and decoded[0] is None

        text = fields.pop("text", None)
        body_field = _BODY_FIELDS.get(kind)
        if text and body_field:
            fields.setdefault(body_field, text)

        defaults = self._title_defaults(kind, ref, context)
        for key, value in defaults.items():
            fields.setdefault(key, value)
        stamps = self._stamps(kind, context)
        fields.update(stamps)

        model = ENTITY_MODELS[kind]
        try:
            record = model.model_validate(fields)
        except ValidationError as exc:
            if not legacy:
                self._fail(
                    kind, ref, SyncError(SyncErrorKind.LOCAL, str(exc), "decode_record")
                )
                return None
            # Legacy labels that do not fit the record fall back to the title
            try:
                record = model.model_validate({**defaults, **stamps})
            except ValidationError as retry_exc:
                self._fail(
                    kind, ref, SyncError(SyncErrorKind.LOCAL, str(retry_exc), "decode_record")
                )
                return None

        record.mark_synced(utc_now())
        self._graph.add(kind, record)
        self._page_map.set(kind, record.id, ref.id)
        self._report.stats(kind.value).synced += 1
        logger.debug(
            "notion_entity_pulled",
            extra={
                "correlation_id": self._correlation_id,
                "kind": kind.value,
                "entity_id": record.id,
                "page_id": ref.id,
                "decoded": decoded is not None,
            },
        )
        return record

    def _title_defaults(
        self, kind: EntityKind, ref: PageRef, context: _PullContext
    ) -> dict[str, Any]:
        defaults: dict[str, Any] = {
            "id": self._page_map.find_local_id(kind, ref.id) or ref.id,
        }
        name_field = _NAME_FIELDS.get(kind)
        if name_field:
            defaults[name_field] = ref.title
        if kind is EntityKind.EPISODE:
            parsed = parse_episode_title(ref.title)
            if parsed is not None:
                defaults["episodeNumber"] = parsed[0]
                if parsed[1]:
                    defaults["title"] = parsed[1]
            else:
                defaults["episodeNumber"] = context.position
                defaults["title"] = ref.title or None
        return defaults

    def _stamps(self, kind: EntityKind, context: _PullContext) -> dict[str, Any]:
        """Foreign keys come from where the page sits, not from its payload."""
        stamps: dict[str, Any] = {}
        if kind in (
            EntityKind.SYNOPSIS,
            EntityKind.CHARACTER,
            EntityKind.SETTING,
            EntityKind.CHAPTER,
            EntityKind.EPISODE,
        ):
            stamps["workId"] = context.work_id
        if kind is EntityKind.EPISODE:
            stamps["chapterId"] = context.chapter_id
        if kind is EntityKind.TAG and context.category_id is not None:
            stamps["categoryId"] = context.category_id
        return stamps

    def _fail(self, kind: NodeKind | EntityKind, ref: PageRef, error: SyncError) -> None:
        if isinstance(kind, NodeKind) and kind in ENTITY_NODE_KINDS:
            key = ENTITY_NODE_KINDS[kind].value
        else:
            key = kind.value
        self._report.stats(key).failed += 1
        record_failure(self._report, error, subject=f"{key} page {ref.id}")
        logger.warning(
            "notion_pull_failed",
            extra={
                "correlation_id": self._correlation_id,
                "kind": key,
                "page_id": ref.id,
                "operation": error.operation,
                "error": error.message,
            },
        )

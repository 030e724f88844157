"""Local store -> Notion push."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from workdesk.adapters.notion.sync.batching import run_batches
from workdesk.adapters.notion.sync.constants import STATS_MARKER, STORE_COLLECTIONS
from workdesk.adapters.notion.sync.errors import (
    Result,
    SerializationError,
    SyncError,
    SyncErrorKind,
    record_failure,
)
from workdesk.adapters.notion.sync.serializer import bulleted, encode, heading
from workdesk.adapters.notion.sync.tree import (
    NodeKind,
    SyncNode,
    build_tag_tree,
    build_work_tree,
)
from workdesk.adapters.notion.sync.upsert import PageUpserter

if TYPE_CHECKING:
    from workdesk.adapters.notion.models import SyncReport
    from workdesk.adapters.notion.sync.page_id_map import PageIdMap
    from workdesk.adapters.notion.sync.protocols import (
        LocalStore,
        NotionClientProtocol,
        RecordCollection,
    )
    from workdesk.domain.models import Episode, EntityKind

logger = logging.getLogger(__name__)


async def load_trees(store: LocalStore) -> tuple[list[SyncNode], SyncNode]:
    """Build every work tree plus the global tag tree from the local store."""
    trees: list[SyncNode] = []
    works = await store.works.get_all()
    for work in sorted(works, key=lambda w: w.created_at):
        trees.append(
            build_work_tree(
                work,
                synopses=await store.synopses.list_by_index("work_id", work.id),
                characters=await store.characters.list_by_index("work_id", work.id),
                settings=await store.settings.list_by_index("work_id", work.id),
                chapters=await store.chapters.list_by_index("work_id", work.id),
                episodes=await store.episodes.list_by_index("work_id", work.id),
            )
        )
    tag_tree = build_tag_tree(await store.tag_categories.get_all(), await store.tags.get_all())
    return trees, tag_tree


def write_reason(node: SyncNode, page_map: PageIdMap, *, force: bool) -> str | None:
    """Why an entity node must be written this pass, or None if it can be skipped."""
    entity = node.entity
    if entity is None:
        return None
    if force:
        return "forced"
    if entity.is_dirty:
        return "dirty"
    if entity.synced_at is None:
        return "never_synced"
    if page_map.get(node.map_kind, node.map_key) is None:
        return "unmapped"
    return None


def serial_statistics(episodes: list[Episode], chapter_count: int) -> list[dict[str, Any]]:
    with_spaces = without_spaces = 0
    for episode in episodes:
        counts = episode.character_counts()
        with_spaces += counts[0]
        without_spaces += counts[1]
    return [
        heading(STATS_MARKER, level=2),
        bulleted(f"Chapters: {chapter_count}"),
        bulleted(f"Episodes: {len(episodes)}"),
        bulleted(f"Characters (with spaces): {with_spaces:,}"),
        bulleted(f"Characters (without spaces): {without_spaces:,}"),
    ]


class NotionPusher:
    """Walks the page tree top-down and upserts what changed."""

    def __init__(
        self,
        client: NotionClientProtocol,
        store: LocalStore,
        page_map: PageIdMap,
        report: SyncReport,
        *,
        root_page_id: str,
        batch_width: int,
        batch_delay: float,
        force: bool = False,
        correlation_id: str | None = None,
    ) -> None:
        self._store = store
        self._page_map = page_map
        self._report = report
        self._root_page_id = root_page_id
        self._batch_width = batch_width
        self._batch_delay = batch_delay
        self._force = force
        self._correlation_id = correlation_id
        self._upserter = PageUpserter(client, correlation_id=correlation_id)
        self._failed: set[int] = set()
        self._force_ids: set[int] = set()

    def needs_write(self, node: SyncNode) -> bool:
        if node.entity is not None and id(node) in self._force_ids:
            return True
        return write_reason(node, self._page_map, force=self._force) is not None

    def _subtree_changed(self, node: SyncNode) -> bool:
        return any(self.needs_write(n) for n in node.walk() if n.entity is not None)

    async def push(self, trees: list[SyncNode], tag_tree: SyncNode) -> None:
        # Roots with nothing to write anywhere below are not touched at all
        visited: list[SyncNode] = []
        for tree in trees:
            if self._subtree_changed(tree):
                visited.append(tree)
            else:
                self._count(tree, "unchanged")

        await self._push_siblings(visited, self._root_page_id)

        if tag_tree.children:
            await self.push_node(tag_tree, self._root_page_id)

    async def push_node(self, node: SyncNode, parent_page_id: str) -> str | None:
        """Resolve (upsert or reuse) the page for ``node``, then push its subtree."""
        if node.kind in (NodeKind.CHARACTERS, NodeKind.SETTINGS, NodeKind.SERIAL, NodeKind.TAGS):
            existing = self._container_page(node)
            if existing and not self._force and not self._subtree_changed(node):
                self._count(node, "unchanged")
                return existing
            page_id = await self._resolve_container(node, parent_page_id, existing)
        elif node.kind in (
            NodeKind.ROOT,
            NodeKind.SYNOPSIS,
            NodeKind.CHARACTER,
            NodeKind.SETTING,
            NodeKind.CHAPTER,
            NodeKind.EPISODE,
            NodeKind.TAG_CATEGORY,
            NodeKind.TAG,
        ):
            page_id = await self._resolve_entity(node, parent_page_id)
        else:
            raise ValueError(f"unknown node kind: {node.kind}")

        if page_id is None:
            self._count(node, "skipped", include_self=False)
            return None
        await self._descend(node, page_id)
        return page_id

    async def _descend(self, node: SyncNode, page_id: str) -> None:
        if node.kind is NodeKind.TAGS:
            await self._push_tags(node, page_id)
            return
        if node.children:
            await self._push_children(node, page_id)
        if node.kind is NodeKind.SERIAL:
            await self._push_serial_stats(node, page_id)

    async def _push_children(self, node: SyncNode, page_id: str) -> None:
        if node.kind is NodeKind.SERIAL:
            # Chapters and their episodes first, then chapterless episodes
            chapters = [c for c in node.children if c.kind is NodeKind.CHAPTER]
            await self._push_siblings(chapters, page_id)
            await self._push_siblings(
                [c for c in node.children if c.kind is not NodeKind.CHAPTER], page_id
            )
            return
        await self._push_siblings(node.children, page_id)

    async def _push_siblings(self, nodes: list[SyncNode], page_id: str) -> None:
        # Entities with pending descendants are upserted too, so an archived
        # or lost ancestor is repaired before anything is written under it
        pending = [c for c in nodes if c.entity is not None and self._subtree_changed(c)]
        written = await self._write_siblings(pending, page_id)
        for child in nodes:
            if id(child) not in written:
                await self.push_node(child, page_id)
                continue
            child_page_id = written[id(child)]
            if child_page_id is None:
                self._count(child, "skipped", include_self=False)
            else:
                await self._descend(child, child_page_id)

    async def _write_siblings(
        self, nodes: list[SyncNode], parent_page_id: str
    ) -> dict[int, str | None]:
        """Batch-write sibling entity pages; maps ``id(node)`` to page id (None on failure)."""
        if not nodes:
            return {}
        results = await run_batches(
            nodes,
            self._batch_width,
            lambda n: self._write_entity(n, parent_page_id),
            self._batch_delay,
            operation_name="upsert_entity_page",
            correlation_id=self._correlation_id,
        )
        written: dict[int, str | None] = {}
        for node, result in zip(nodes, results, strict=True):
            if not result.ok and id(node) not in self._failed:
                # Crash captured by the scheduler, not yet accounted for
                self._fail(node, result.unwrap_error())
            written[id(node)] = result.value if result.ok else None
        return written

    async def _resolve_entity(self, node: SyncNode, parent_page_id: str) -> str | None:
        if not self._subtree_changed(node):
            self._report.stats(node.map_kind or node.kind.value).unchanged += 1
            return self._page_map.get(node.map_kind, node.map_key)
        result = await self._write_entity(node, parent_page_id)
        return result.value if result.ok else None

    async def _write_entity(self, node: SyncNode, parent_page_id: str) -> Result[str]:
        kind = node.entity_kind
        entity = node.entity
        if kind is None or entity is None:
            raise ValueError(f"{node.kind.value} node carries no record")
        pending = self.needs_write(node)
        stats = self._report.stats(kind.value)

        try:
            blocks = encode(kind, entity)
        except SerializationError as exc:
            error = SyncError(SyncErrorKind.LOCAL, str(exc), "encode", retryable=False)
            self._fail(node, error)
            return Result.failure(error)

        existing = self._page_map.get(kind, entity.id)
        upserted = await self._upserter.upsert(parent_page_id, existing, node.title, blocks)
        if not upserted.ok:
            error = upserted.unwrap_error()
            self._fail(node, error)
            return Result.failure(error)

        outcome = upserted.unwrap()
        if outcome.created and existing is not None:
            # Pages under the lost page are gone with it
            self._force_ids.update(id(n) for n in node.walk() if n is not node)
        if outcome.page_id != existing:
            self._page_map.set(kind, entity.id, outcome.page_id)
            self._page_map.flush()

        # A record visited only for its descendants was verified, not written
        if pending:
            entity.mark_synced()
            try:
                await self._collection(kind).put(entity)
            except Exception as exc:
                error = SyncError(SyncErrorKind.LOCAL, str(exc), "store_put", retryable=False)
                self._fail(node, error)
                return Result.failure(error)

        if outcome.mutated:
            stats.synced += 1
        else:
            stats.unchanged += 1
        logger.debug(
            "notion_entity_pushed",
            extra={
                "correlation_id": self._correlation_id,
                "kind": kind.value,
                "entity_id": entity.id,
                "page_id": outcome.page_id,
                "created": outcome.created,
                "restored": outcome.restored,
                "content_replaced": outcome.content_replaced,
            },
        )
        return Result.success(outcome.page_id)

    def _container_page(self, node: SyncNode) -> str | None:
        if node.map_kind is None:
            return self._page_map.get_root(node.map_key)
        return self._page_map.get(node.map_kind, node.map_key)

    async def _resolve_container(
        self, node: SyncNode, parent_page_id: str, existing: str | None
    ) -> str | None:
        upserted = await self._upserter.upsert(parent_page_id, existing, node.title, None)
        if not upserted.ok:
            self._fail(node, upserted.unwrap_error())
            return None

        outcome = upserted.unwrap()
        page_id = outcome.page_id
        if outcome.created and existing is not None:
            self._force_ids.update(id(n) for n in node.walk())
        if page_id != existing:
            if node.map_kind is None:
                self._page_map.set_root(node.map_key, page_id)
            else:
                self._page_map.set(node.map_kind, node.map_key, page_id)
            self._page_map.flush()
        return page_id

    async def _push_tags(self, node: SyncNode, page_id: str) -> None:
        categories = [c for c in node.children if c.kind is NodeKind.TAG_CATEGORY]
        tags = [
            t
            for c in node.children
            for t in (c.children if c.kind is NodeKind.TAG_CATEGORY else [c])
        ]

        pending = [c for c in categories if self._subtree_changed(c)]
        written = await self._write_siblings(pending, page_id)

        # Category id -> page id, from this pass's writes or the existing map
        index: dict[str, str] = {}
        for category in categories:
            if id(category) in written:
                category_page = written[id(category)]
            else:
                self._report.stats(category.map_kind or "tag_category").unchanged += 1
                category_page = self._page_map.get(category.map_kind, category.map_key)
            if category_page:
                index[category.map_key] = category_page

        to_write: list[tuple[SyncNode, str]] = []
        for tag in tags:
            if not self.needs_write(tag):
                self._report.stats(tag.map_kind or "tag").unchanged += 1
                continue
            category_id = getattr(tag.entity, "category_id", "")
            parent = index.get(category_id)
            if parent is None:
                self._fail(
                    tag,
                    SyncError(
                        SyncErrorKind.LOCAL,
                        f"category {category_id} has no page",
                        "resolve_tag_parent",
                    ),
                )
                continue
            to_write.append((tag, parent))

        if to_write:
            results = await run_batches(
                to_write,
                self._batch_width,
                lambda pair: self._write_entity(pair[0], pair[1]),
                self._batch_delay,
                operation_name="upsert_tag_page",
                correlation_id=self._correlation_id,
            )
            for (tag, _), result in zip(to_write, results, strict=True):
                if not result.ok and id(tag) not in self._failed:
                    self._fail(tag, result.unwrap_error())

    async def _push_serial_stats(self, node: SyncNode, page_id: str) -> None:
        episodes = [n.entity for n in node.walk() if n.kind is NodeKind.EPISODE]
        chapter_count = sum(1 for n in node.children if n.kind is NodeKind.CHAPTER)
        blocks = serial_statistics(episodes, chapter_count)  # type: ignore[arg-type]
        result = await self._upserter.replace_trailing_section(page_id, STATS_MARKER, blocks)
        if not result.ok:
            record_failure(
                self._report, result.unwrap_error(), subject=f"serial statistics {node.map_key}"
            )
            return
        logger.debug(
            "notion_serial_stats_pushed",
            extra={
                "correlation_id": self._correlation_id,
                "work_id": node.map_key,
                "changed": result.value,
            },
        )

    def _collection(self, kind: EntityKind) -> RecordCollection[Any]:
        return getattr(self._store, STORE_COLLECTIONS[kind])

    def _fail(self, node: SyncNode, error: SyncError) -> None:
        self._failed.add(id(node))
        stats_key = node.map_kind if node.entity is not None else node.kind.value
        self._report.stats(stats_key or node.kind.value).failed += 1
        record_failure(self._report, error, subject=f"{node.kind.value} {node.map_key}")
        logger.warning(
            "notion_push_failed",
            extra={
                "correlation_id": self._correlation_id,
                "node_kind": node.kind.value,
                "key": node.map_key,
                "operation": error.operation,
                "error": error.message,
                "retryable": error.retryable,
            },
        )

    def _count(self, node: SyncNode, outcome: str, *, include_self: bool = True) -> None:
        for n in node.walk():
            if n.entity is None or (n is node and not include_self):
                continue
            stats = self._report.stats(n.map_kind or n.kind.value)
            setattr(stats, outcome, getattr(stats, outcome) + 1)

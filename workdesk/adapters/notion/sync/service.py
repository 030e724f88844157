"""Public Notion sync service."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

from workdesk.adapters.notion.client import NotionClient
from workdesk.adapters.notion.models import SyncReport
from workdesk.adapters.notion.sync.constants import KIND_ORDER, STORE_COLLECTIONS
from workdesk.adapters.notion.sync.errors import (
    SyncErrorKind,
    SyncPrerequisiteError,
    record_error,
    remote_call,
)
from workdesk.adapters.notion.sync.pull import NotionPuller, PulledGraph
from workdesk.adapters.notion.sync.push import NotionPusher, load_trees, write_reason
from workdesk.core.logging_utils import generate_correlation_id

if TYPE_CHECKING:
    from workdesk.adapters.notion.sync.page_id_map import PageIdMap
    from workdesk.adapters.notion.sync.protocols import (
        LocalStore,
        NotionClientFactory,
        NotionClientProtocol,
    )
    from workdesk.config import AppConfig

logger = logging.getLogger(__name__)


class NotionSyncService:
    """Mirror of the local store in a Notion page tree.

    ``push`` projects local records onto pages, ``pull`` rebuilds records from
    pages. Both share the PageIdMap, which is the only link between a record
    and its page.
    """

    def __init__(
        self,
        config: AppConfig,
        store: LocalStore,
        page_map: PageIdMap,
        client_factory: NotionClientFactory | None = None,
    ) -> None:
        self._notion = config.notion
        self._sync = config.sync
        self._store = store
        self._page_map = page_map
        self._client_factory = client_factory or self._default_client_factory

    def _default_client_factory(self) -> NotionClient:
        return NotionClient(
            self._notion.api_key,
            api_url=self._notion.api_url,
            notion_version=self._notion.notion_version,
            timeout=self._notion.timeout_sec,
            max_retries=self._notion.max_retries,
        )

    def _require_configured(self) -> None:
        if not self._notion.api_key:
            raise SyncPrerequisiteError("NOTION_API_KEY is not set")
        if not self._notion.root_page_id:
            raise SyncPrerequisiteError("NOTION_ROOT_PAGE_ID is not set")

    async def _verify_root(self, client: NotionClientProtocol, correlation_id: str) -> None:
        root_id = self._notion.root_page_id
        result = await remote_call("retrieve_root", lambda: client.retrieve_page(root_id))
        if not result.ok:
            error = result.unwrap_error()
            logger.error(
                "notion_root_unreachable",
                extra={
                    "correlation_id": correlation_id,
                    "root_page_id": root_id,
                    "error": error.message,
                },
            )
            if error.kind is SyncErrorKind.NOT_FOUND:
                msg = f"Root page {root_id} not found or not shared with the integration"
            else:
                msg = f"Root page {root_id} is unreachable: {error.message}"
            raise SyncPrerequisiteError(msg)
        if result.unwrap().is_archived:
            raise SyncPrerequisiteError(f"Root page {root_id} is archived")

    async def push(self, force: bool = False) -> SyncReport:
        """Write every new or changed record to Notion.

        Raises:
            SyncPrerequisiteError: Missing credentials or unreachable root page
        """
        self._require_configured()
        correlation_id = generate_correlation_id()
        start_time = time.time()
        report = SyncReport(direction="push", correlation_id=correlation_id)
        logger.info(
            "notion_push_started", extra={"correlation_id": correlation_id, "force": force}
        )

        async with self._client_factory() as client:
            await self._verify_root(client, correlation_id)
            trees, tag_tree = await load_trees(self._store)
            pusher = NotionPusher(
                client,
                self._store,
                self._page_map,
                report,
                root_page_id=self._notion.root_page_id,
                batch_width=self._sync.batch_width,
                batch_delay=self._sync.batch_delay_sec,
                force=force,
                correlation_id=correlation_id,
            )
            try:
                await pusher.push(trees, tag_tree)
            finally:
                self._page_map.flush()

        report.duration_seconds = time.time() - start_time
        logger.info(
            "notion_push_complete",
            extra={
                "correlation_id": correlation_id,
                "synced": report.items_synced,
                "failed": report.items_failed,
                "duration_sec": round(report.duration_seconds, 2),
            },
        )
        return report

    async def pull(self) -> SyncReport:
        """Rebuild local records from the page tree and store them.

        Raises:
            SyncPrerequisiteError: Missing credentials or unreachable root page
        """
        self._require_configured()
        correlation_id = generate_correlation_id()
        start_time = time.time()
        report = SyncReport(direction="pull", correlation_id=correlation_id)
        logger.info("notion_pull_started", extra={"correlation_id": correlation_id})

        async with self._client_factory() as client:
            await self._verify_root(client, correlation_id)
            puller = NotionPuller(
                client,
                self._page_map,
                report,
                root_page_id=self._notion.root_page_id,
                correlation_id=correlation_id,
            )
            graph = await puller.pull()

        await self._store_pulled(graph, report, correlation_id)
        report.duration_seconds = time.time() - start_time
        logger.info(
            "notion_pull_complete",
            extra={
                "correlation_id": correlation_id,
                "records": len(graph),
                "failed": report.items_failed,
                "duration_sec": round(report.duration_seconds, 2),
            },
        )
        return report

    async def _store_pulled(
        self, graph: PulledGraph, report: SyncReport, correlation_id: str
    ) -> None:
        for kind, record in graph.items():
            collection = getattr(self._store, STORE_COLLECTIONS[kind])
            try:
                await collection.put(record)
            except Exception as exc:
                stats = report.stats(kind.value)
                stats.synced -= 1
                stats.failed += 1
                record_error(report, f"{kind.value} {record.id}: store_put: {exc}", False)
                logger.exception(
                    "notion_pull_store_failed",
                    extra={
                        "correlation_id": correlation_id,
                        "kind": kind.value,
                        "entity_id": record.id,
                    },
                )

    async def preview(self, force: bool = False) -> dict[str, Any]:
        """Dry run of ``push``: which records would be written, and why. No remote calls."""
        trees, tag_tree = await load_trees(self._store)
        would_write: list[dict[str, str]] = []
        unchanged = 0
        for tree in [*trees, tag_tree]:
            for node in tree.walk():
                if node.entity is None:
                    continue
                reason = write_reason(node, self._page_map, force=force)
                if reason is None:
                    unchanged += 1
                    continue
                would_write.append(
                    {
                        "kind": node.map_kind or node.kind.value,
                        "id": node.entity.id,
                        "title": node.title,
                        "reason": reason,
                    }
                )
        return {"would_write": would_write, "unchanged": unchanged}

    async def status(self) -> dict[str, Any]:
        """Local record counts and mapped page counts per kind."""
        kinds: dict[str, dict[str, int]] = {}
        for kind in KIND_ORDER:
            records = await getattr(self._store, STORE_COLLECTIONS[kind]).get_all()
            kinds[kind.value] = {
                "local": len(records),
                "mapped": len(self._page_map.entries(kind)),
                "pending": sum(1 for r in records if r.is_dirty or r.synced_at is None),
            }
        return {
            "configured": bool(self._notion.api_key and self._notion.root_page_id),
            "root_page_id": self._notion.root_page_id or None,
            "kinds": kinds,
        }

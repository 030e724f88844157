"""Notion sync engine: push the local graph to a page tree and pull it back."""

from workdesk.adapters.notion.sync.errors import (
    Result,
    SerializationError,
    SyncError,
    SyncErrorKind,
    SyncPrerequisiteError,
)
from workdesk.adapters.notion.sync.page_id_map import InMemoryPageIdMapStore, PageIdMap
from workdesk.adapters.notion.sync.pull import PulledGraph
from workdesk.adapters.notion.sync.service import NotionSyncService

__all__ = [
    "InMemoryPageIdMapStore",
    "NotionSyncService",
    "PageIdMap",
    "PulledGraph",
    "Result",
    "SerializationError",
    "SyncError",
    "SyncErrorKind",
    "SyncPrerequisiteError",
]

"""Persistent ``(kind, local id) -> Notion page id`` mapping.

The whole map lives in one JSON blob::

    {"version": 1, "entities": {kind: {local_id: page_id}}, "roots": {slot: page_id}}

It is read once at construction and written back whole on ``flush()``.
"""

from __future__ import annotations

import copy
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from workdesk.adapters.notion.sync.protocols import PageIdMapStore

logger = logging.getLogger(__name__)

PAGE_ID_MAP_VERSION = 1


def empty_blob() -> dict[str, Any]:
    return {"version": PAGE_ID_MAP_VERSION, "entities": {}, "roots": {}}


class InMemoryPageIdMapStore:
    """Blob store kept in process memory (tests, dry runs)."""

    def __init__(self, blob: dict[str, Any] | None = None) -> None:
        self.blob = copy.deepcopy(blob) if blob else None
        self.saves = 0

    def load(self) -> dict[str, Any] | None:
        return copy.deepcopy(self.blob) if self.blob is not None else None

    def save(self, blob: dict[str, Any]) -> None:
        self.blob = copy.deepcopy(blob)
        self.saves += 1


class PageIdMap:
    def __init__(self, store: PageIdMapStore) -> None:
        self._store = store
        self._blob = self._coerce(store.load())
        self._dirty = False

    @staticmethod
    def _coerce(raw: dict[str, Any] | None) -> dict[str, Any]:
        blob = empty_blob()
        if not raw:
            return blob
        if raw.get("version", PAGE_ID_MAP_VERSION) != PAGE_ID_MAP_VERSION:
            logger.warning("page_id_map_version_mismatch", extra={"version": raw.get("version")})
        for kind, entries in (raw.get("entities") or {}).items():
            if isinstance(entries, dict):
                blob["entities"][str(kind)] = {str(k): str(v) for k, v in entries.items() if v}
        for slot, page_id in (raw.get("roots") or {}).items():
            if page_id:
                blob["roots"][str(slot)] = str(page_id)
        return blob

    @staticmethod
    def _key(kind: Any) -> str:
        return getattr(kind, "value", kind)

    def get(self, kind: Any, local_id: str) -> str | None:
        return self._blob["entities"].get(self._key(kind), {}).get(local_id)

    def set(self, kind: Any, local_id: str, page_id: str) -> None:
        entries = self._blob["entities"].setdefault(self._key(kind), {})
        if entries.get(local_id) != page_id:
            entries[local_id] = page_id
            self._dirty = True

    def get_root(self, slot: str) -> str | None:
        return self._blob["roots"].get(slot)

    def set_root(self, slot: str, page_id: str) -> None:
        if self._blob["roots"].get(slot) != page_id:
            self._blob["roots"][slot] = page_id
            self._dirty = True

    def find_local_id(self, kind: Any, page_id: str) -> str | None:
        for local_id, mapped in self._blob["entities"].get(self._key(kind), {}).items():
            if mapped == page_id:
                return local_id
        return None

    def entries(self, kind: Any) -> dict[str, str]:
        return dict(self._blob["entities"].get(self._key(kind), {}))

    def snapshot(self) -> dict[str, Any]:
        return copy.deepcopy(self._blob)

    def flush(self) -> None:
        """Write the blob back; a no-op when nothing changed since the last flush."""
        if not self._dirty:
            return
        self._store.save(self.snapshot())
        self._dirty = False
        logger.debug(
            "page_id_map_flushed",
            extra={"kinds": {k: len(v) for k, v in self._blob["entities"].items()}},
        )

"""SQLite implementation of the local record store.

Every kind shares the ``records`` table; each collection is a view on one kind.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from workdesk.adapters.notion.sync.constants import STORE_COLLECTIONS
from workdesk.db.models import Record, SyncState
from workdesk.domain.models import ENTITY_MODELS, EntityKind, SyncTrackedRecord
from workdesk.infrastructure.persistence.sqlite.base import SqliteBaseRepository

if TYPE_CHECKING:
    from workdesk.db.session import DatabaseSessionManager
    from workdesk.domain.models import (
        Chapter,
        Character,
        Episode,
        Setting,
        Synopsis,
        Tag,
        TagCategory,
        Work,
    )

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=SyncTrackedRecord)

PAGE_ID_MAP_KEY = "notion_page_id_map"

# Foreign key stored in the indexed parent_id column, per kind
_PARENT_FIELDS: dict[EntityKind, str] = {
    EntityKind.EPISODE: "chapter_id",
    EntityKind.TAG: "category_id",
}


class SqliteRecordCollection(SqliteBaseRepository, Generic[R]):
    """Records of one kind."""

    def __init__(self, session_manager: DatabaseSessionManager | Any, kind: EntityKind) -> None:
        super().__init__(session_manager)
        self.kind = kind
        self._model: type[R] = ENTITY_MODELS[kind]  # type: ignore[assignment]

    def _load(self, row: Record) -> R:
        return self._model.model_validate(row.payload)

    async def get_all(self) -> list[R]:
        def _query() -> list[R]:
            rows = Record.select().where(Record.kind == self.kind.value).order_by(Record.record_id)
            return [self._load(row) for row in rows]

        return await self._execute(_query, operation_name="get_all_records")

    async def get_by_id(self, record_id: str) -> R | None:
        def _query() -> R | None:
            row = Record.get_or_none(
                (Record.kind == self.kind.value) & (Record.record_id == record_id)
            )
            return self._load(row) if row else None

        return await self._execute(_query, operation_name="get_record")

    async def put(self, record: R) -> None:
        payload = record.model_dump(mode="json", by_alias=True)
        parent_field = _PARENT_FIELDS.get(self.kind)

        def _upsert() -> None:
            Record.insert(
                kind=self.kind.value,
                record_id=record.id,
                work_id=getattr(record, "work_id", None),
                parent_id=getattr(record, parent_field, None) if parent_field else None,
                payload=payload,
            ).on_conflict_replace().execute()

        await self._execute(_upsert, operation_name="put_record")

    async def delete(self, record_id: str) -> None:
        def _delete() -> int:
            return (
                Record.delete()
                .where((Record.kind == self.kind.value) & (Record.record_id == record_id))
                .execute()
            )

        await self._execute(_delete, operation_name="delete_record")

    async def list_by_index(self, field: str, value: str) -> list[R]:
        if field == "work_id":
            column = Record.work_id
        elif field == _PARENT_FIELDS.get(self.kind):
            column = Record.parent_id
        else:
            return [r for r in await self.get_all() if getattr(r, field, None) == value]

        def _query() -> list[R]:
            rows = (
                Record.select()
                .where((Record.kind == self.kind.value) & (column == value))
                .order_by(Record.record_id)
            )
            return [self._load(row) for row in rows]

        return await self._execute(_query, operation_name="list_records_by_index")

    async def count(self) -> int:
        def _query() -> int:
            return Record.select().where(Record.kind == self.kind.value).count()

        return await self._execute(_query, operation_name="count_records")


class SqliteLocalStore:
    """All record collections over one SQLite database."""

    def __init__(self, session_manager: DatabaseSessionManager | Any) -> None:
        self.works: SqliteRecordCollection[Work] = SqliteRecordCollection(
            session_manager, EntityKind.WORK
        )
        self.synopses: SqliteRecordCollection[Synopsis] = SqliteRecordCollection(
            session_manager, EntityKind.SYNOPSIS
        )
        self.characters: SqliteRecordCollection[Character] = SqliteRecordCollection(
            session_manager, EntityKind.CHARACTER
        )
        self.settings: SqliteRecordCollection[Setting] = SqliteRecordCollection(
            session_manager, EntityKind.SETTING
        )
        self.chapters: SqliteRecordCollection[Chapter] = SqliteRecordCollection(
            session_manager, EntityKind.CHAPTER
        )
        self.episodes: SqliteRecordCollection[Episode] = SqliteRecordCollection(
            session_manager, EntityKind.EPISODE
        )
        self.tag_categories: SqliteRecordCollection[TagCategory] = SqliteRecordCollection(
            session_manager, EntityKind.TAG_CATEGORY
        )
        self.tags: SqliteRecordCollection[Tag] = SqliteRecordCollection(
            session_manager, EntityKind.TAG
        )

    def collection(self, kind: EntityKind) -> SqliteRecordCollection[Any]:
        return getattr(self, STORE_COLLECTIONS[kind])


class SqlitePageIdMapStore:
    """PageIdMap blob kept in one ``sync_state`` row."""

    def __init__(self, session_manager: DatabaseSessionManager | Any, key: str = PAGE_ID_MAP_KEY):
        self._session = session_manager
        self._key = key

    def load(self) -> dict[str, Any] | None:
        with self._session.connection_context():
            row = SyncState.get_or_none(SyncState.key == self._key)
            return dict(row.value) if row else None

    def save(self, blob: dict[str, Any]) -> None:
        with self._session.connection_context():
            SyncState.insert(key=self._key, value=blob).on_conflict_replace().execute()
        logger.debug("page_id_map_saved", extra={"key": self._key})

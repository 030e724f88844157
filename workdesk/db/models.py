"""Peewee ORM models for the local record store."""

from __future__ import annotations

import datetime as _dt
from typing import Any

import peewee
from playhouse.sqlite_ext import JSONField

from workdesk.core.time_utils import UTC

# A proxy that will be initialised with the concrete database instance at runtime.
database_proxy: peewee.Database = peewee.DatabaseProxy()


def _utcnow() -> _dt.datetime:
    return _dt.datetime.now(UTC)


class BaseModel(peewee.Model):
    """Base Peewee model bound to the lazily initialised database proxy."""

    def save(self, *args: Any, **kwargs: Any) -> int:
        if hasattr(self, "updated_at"):
            self.updated_at = _utcnow()
        return super().save(*args, **kwargs)

    class Meta:
        database = database_proxy
        legacy_table_names = False


class Record(BaseModel):
    """One entity of any kind; the full record lives in ``payload``."""

    kind = peewee.TextField()
    record_id = peewee.TextField()
    # Denormalised lookup keys for list_by_index
    work_id = peewee.TextField(null=True, index=True)
    parent_id = peewee.TextField(null=True, index=True)
    payload = JSONField()
    updated_at = peewee.DateTimeField(default=_utcnow)

    class Meta:
        table_name = "records"
        primary_key = peewee.CompositeKey("kind", "record_id")


class SyncState(BaseModel):
    """Small keyed JSON blobs owned by the sync engine (the page id map)."""

    key = peewee.TextField(primary_key=True)
    value = JSONField()
    updated_at = peewee.DateTimeField(default=_utcnow)

    class Meta:
        table_name = "sync_state"


ALL_MODELS: tuple[type[BaseModel], ...] = (Record, SyncState)

"""Pydantic models for the Notion API and sync reporting."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - Pydantic needs this at runtime
from typing import Any

from pydantic import BaseModel, Field, computed_field

# Block types that represent nested pages rather than page content.
CHILD_PAGE_BLOCK_TYPES = frozenset({"child_page", "child_database"})


def plain_text(rich_text: list[dict[str, Any]] | None) -> str:
    """Concatenate the text of a Notion rich_text array."""
    parts: list[str] = []
    for item in rich_text or []:
        text = item.get("plain_text")
        if text is None:
            text = (item.get("text") or {}).get("content", "")
        parts.append(text)
    return "".join(parts)


class NotionPage(BaseModel):
    """Notion page object (only the fields the sync engine reads)."""

    id: str
    archived: bool = False
    in_trash: bool = False
    parent: dict[str, Any] = Field(default_factory=dict)
    properties: dict[str, Any] = Field(default_factory=dict)
    url: str | None = None
    created_time: datetime | None = None
    last_edited_time: datetime | None = None

    model_config = {"extra": "ignore"}

    @property
    def is_archived(self) -> bool:
        return self.archived or self.in_trash

    @property
    def parent_page_id(self) -> str | None:
        return self.parent.get("page_id")

    @property
    def title(self) -> str:
        for prop in self.properties.values():
            if isinstance(prop, dict) and prop.get("type") == "title":
                return plain_text(prop.get("title"))
        title_prop = self.properties.get("title")
        if isinstance(title_prop, dict):
            return plain_text(title_prop.get("title"))
        return ""


class NotionBlock(BaseModel):
    """Notion block object; the type-specific payload lives under ``data[type]``."""

    id: str
    type: str
    has_children: bool = False
    archived: bool = False
    data: dict[str, Any] = Field(default_factory=dict)

    model_config = {"extra": "ignore"}

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> NotionBlock:
        block_type = payload.get("type", "unsupported")
        return cls(
            id=payload["id"],
            type=block_type,
            has_children=bool(payload.get("has_children")),
            archived=bool(payload.get("archived") or payload.get("in_trash")),
            data={block_type: payload.get(block_type) or {}},
        )

    @property
    def payload(self) -> dict[str, Any]:
        return self.data.get(self.type, {})

    @property
    def is_child_page(self) -> bool:
        return self.type in CHILD_PAGE_BLOCK_TYPES

    @property
    def text(self) -> str:
        if self.type == "child_page":
            return self.payload.get("title", "")
        return plain_text(self.payload.get("rich_text"))

    def as_request(self) -> dict[str, Any]:
        """The block in the shape accepted by ``append_block_children``."""
        return {"object": "block", "type": self.type, self.type: self.payload}


class KindStats(BaseModel):
    """Per-entity-kind outcome counters for one pass."""

    synced: int = 0
    unchanged: int = 0
    skipped: int = 0
    failed: int = 0


class SyncReport(BaseModel):
    """Result of a push or pull pass."""

    direction: str  # 'push' or 'pull'
    correlation_id: str | None = None
    kinds: dict[str, KindStats] = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)
    retryable_errors: list[str] = Field(default_factory=list)
    permanent_errors: list[str] = Field(default_factory=list)
    duration_seconds: float = 0.0

    def stats(self, kind: str) -> KindStats:
        if kind not in self.kinds:
            self.kinds[kind] = KindStats()
        return self.kinds[kind]

    @computed_field  # type: ignore[prop-decorator]
    @property
    def items_synced(self) -> int:
        return sum(s.synced for s in self.kinds.values())

    @computed_field  # type: ignore[prop-decorator]
    @property
    def items_failed(self) -> int:
        return sum(s.failed for s in self.kinds.values())

    @property
    def success(self) -> bool:
        return self.items_failed == 0 and not self.errors

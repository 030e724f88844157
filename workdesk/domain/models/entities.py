"""Entity records owned by the local store.

Field names are snake_case in Python and camelCase on the wire (aliases), so
records written by older clients (``workId``, ``createdAt`` ...) load as-is.
"""

from __future__ import annotations

import html
import re
from datetime import datetime  # noqa: TC003 - Pydantic needs this at runtime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from workdesk.core.time_utils import utc_now


class EntityKind(str, Enum):
    """Kinds of records the sync engine knows how to mirror."""

    WORK = "work"
    SYNOPSIS = "synopsis"
    CHARACTER = "character"
    SETTING = "setting"
    CHAPTER = "chapter"
    EPISODE = "episode"
    TAG_CATEGORY = "tag_category"
    TAG = "tag"


class StructurePhase(str, Enum):
    """Four-act narrative phases (gi / seung / jeon / gyeol)."""

    GI = "gi"
    SEUNG = "seung"
    JEON = "jeon"
    GYEOL = "gyeol"


class SettingType(str, Enum):
    WORLD = "world"
    LOCATION = "location"
    TIME = "time"
    OTHER = "other"


class _Record(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class SyncTrackedRecord(_Record):
    """Base for every locally owned entity."""

    id: str
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    synced_at: datetime | None = None
    is_dirty: bool = False

    def mark_synced(self, when: datetime | None = None) -> None:
        self.synced_at = when or utc_now()
        self.is_dirty = False


class Work(SyncTrackedRecord):
    title: str
    description: str = ""
    category: str = ""
    tags: list[str] = Field(default_factory=list)


class SynopsisSection(_Record):
    id: str
    title: str = ""
    content: str = ""
    order: int = 0


class SynopsisStructure(_Record):
    gi: list[SynopsisSection] = Field(default_factory=list)
    seung: list[SynopsisSection] = Field(default_factory=list)
    jeon: list[SynopsisSection] = Field(default_factory=list)
    gyeol: list[SynopsisSection] = Field(default_factory=list)

    def bucket(self, phase: StructurePhase) -> list[SynopsisSection]:
        return getattr(self, phase.value)


class Synopsis(SyncTrackedRecord):
    work_id: str
    structure: SynopsisStructure = Field(default_factory=SynopsisStructure)
    character_ids: list[str] = Field(default_factory=list)
    setting_ids: list[str] = Field(default_factory=list)


class Character(SyncTrackedRecord):
    work_id: str
    name: str
    description: str = ""
    age: int | None = None
    role: str | None = None
    is_main_character: bool = False
    order: int | None = None
    notes: str = ""
    synopsis_ids: list[str] = Field(default_factory=list)


class Setting(SyncTrackedRecord):
    work_id: str
    name: str
    description: str = ""
    type: SettingType = SettingType.OTHER
    order: int | None = None
    notes: str = ""
    synopsis_ids: list[str] = Field(default_factory=list)


class Chapter(SyncTrackedRecord):
    work_id: str
    title: str
    structure_type: StructurePhase | None = None
    order: int | None = None


class Episode(SyncTrackedRecord):
    work_id: str
    chapter_id: str | None = None
    episode_number: int
    title: str | None = None
    content: str = ""
    word_count: int | None = None
    word_count_without_spaces: int | None = None
    published_at: datetime | None = None
    subscriber_count: int | None = None
    view_count: int | None = None
    order: int | None = None
    layout_mode: Literal["scroll", "page"] | None = None
    body_width: Literal[400, 600, 800] | None = None
    first_line_indent: Literal["none", "0.5", "1", "2"] | None = None
    paragraph_spacing: Literal["none", "0.5", "1", "2"] | None = None

    def character_counts(self) -> tuple[int, int]:
        """Return (with spaces, without spaces), preferring stored counts."""
        if self.word_count is not None and self.word_count_without_spaces is not None:
            return self.word_count, self.word_count_without_spaces
        computed = count_characters(self.content)
        return (
            self.word_count if self.word_count is not None else computed[0],
            (
                self.word_count_without_spaces
                if self.word_count_without_spaces is not None
                else computed[1]
            ),
        )


class TagCategory(SyncTrackedRecord):
    name: str
    order: int = 0


class Tag(SyncTrackedRecord):
    category_id: str
    name: str
    order: int = 0
    is_new: bool = False


ENTITY_MODELS: dict[EntityKind, type[SyncTrackedRecord]] = {
    EntityKind.WORK: Work,
    EntityKind.SYNOPSIS: Synopsis,
    EntityKind.CHARACTER: Character,
    EntityKind.SETTING: Setting,
    EntityKind.CHAPTER: Chapter,
    EntityKind.EPISODE: Episode,
    EntityKind.TAG_CATEGORY: TagCategory,
    EntityKind.TAG: Tag,
}

_TAG_RE = re.compile(r"<[^>]*>")
_BLOCK_BREAK_RE = re.compile(r"</(p|div|h[1-6]|li)>|<br\s*/?>", re.IGNORECASE)


def html_to_text(content: str) -> str:
    """Strip markup from editor HTML, keeping paragraph breaks."""
    if not content:
        return ""
    text = _BLOCK_BREAK_RE.sub("\n", content)
    text = _TAG_RE.sub("", text)
    return html.unescape(text).strip()


def count_characters(content: str) -> tuple[int, int]:
    """Character counts of rendered episode text: (with spaces, without spaces)."""
    text = html_to_text(content).replace("\n", "")
    without_spaces = sum(1 for ch in text if not ch.isspace())
    return len(text), without_spaces

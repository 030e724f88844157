"""Page tree that a work (and the global tag set) is projected onto."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

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
)
from workdesk.domain.models import EntityKind

if TYPE_CHECKING:
    from collections.abc import Iterator

    from workdesk.domain.models import (
        Chapter,
        Character,
        Episode,
        Setting,
        Synopsis,
        SyncTrackedRecord,
        Tag,
        TagCategory,
        Work,
    )


class NodeKind(str, Enum):
    ROOT = "root"
    SYNOPSIS = "synopsis"
    CHARACTERS = "characters"
    CHARACTER = "character"
    SETTINGS = "settings"
    SETTING = "setting"
    SERIAL = "serial"
    CHAPTER = "chapter"
    EPISODE = "episode"
    TAGS = "tags"
    TAG_CATEGORY = "tag_category"
    TAG = "tag"


# Nodes that carry an entity record; the rest are containers
ENTITY_NODE_KINDS: dict[NodeKind, EntityKind] = {
    NodeKind.ROOT: EntityKind.WORK,
    NodeKind.SYNOPSIS: EntityKind.SYNOPSIS,
    NodeKind.CHARACTER: EntityKind.CHARACTER,
    NodeKind.SETTING: EntityKind.SETTING,
    NodeKind.CHAPTER: EntityKind.CHAPTER,
    NodeKind.EPISODE: EntityKind.EPISODE,
    NodeKind.TAG_CATEGORY: EntityKind.TAG_CATEGORY,
    NodeKind.TAG: EntityKind.TAG,
}


@dataclass
class SyncNode:
    """One page in the tree.

    ``map_kind``/``map_key`` locate the page in the PageIdMap: an entity kind
    and record id, a container kind and work id, or no kind and a root slot.
    """

    kind: NodeKind
    title: str
    entity: SyncTrackedRecord | None = None
    children: list[SyncNode] = field(default_factory=list)
    map_kind: str | None = None
    map_key: str = ""

    @property
    def is_container(self) -> bool:
        return self.entity is None

    @property
    def entity_kind(self) -> EntityKind | None:
        return ENTITY_NODE_KINDS.get(self.kind)

    def walk(self) -> Iterator[SyncNode]:
        yield self
        for child in self.children:
            yield from child.walk()


_EPISODE_TITLE_RE = re.compile(r"^\s*Episode\s+(\d+)(?:\s*-\s*(.*))?$", re.IGNORECASE)
_LEGACY_EPISODE_TITLE_RE = re.compile(r"^\s*제\s*(\d+)\s*화(?:\s*-\s*(.*))?$")


def episode_title(episode: Episode) -> str:
    if episode.title:
        return f"Episode {episode.episode_number} - {episode.title}"
    return f"Episode {episode.episode_number}"


def parse_episode_title(title: str) -> tuple[int, str | None] | None:
    """Episode number and title from ``Episode N[ - t]`` or legacy ``제 N화[ - t]``."""
    match = _EPISODE_TITLE_RE.match(title) or _LEGACY_EPISODE_TITLE_RE.match(title)
    if not match:
        return None
    rest = (match.group(2) or "").strip()
    return int(match.group(1)), rest or None


def _order_key(record: SyncTrackedRecord) -> tuple:
    order = getattr(record, "order", None)
    return (order is None, order if order is not None else 0, record.created_at)


def _entity_node(kind: NodeKind, title: str, entity: SyncTrackedRecord) -> SyncNode:
    entity_kind = ENTITY_NODE_KINDS[kind]
    return SyncNode(
        kind=kind, title=title, entity=entity, map_kind=entity_kind.value, map_key=entity.id
    )


def _episode_node(episode: Episode) -> SyncNode:
    return _entity_node(NodeKind.EPISODE, episode_title(episode), episode)


def build_work_tree(
    work: Work,
    *,
    synopses: list[Synopsis],
    characters: list[Character],
    settings: list[Setting],
    chapters: list[Chapter],
    episodes: list[Episode],
) -> SyncNode:
    """Tree for one work. Containers are only present when they have children."""
    root = _entity_node(NodeKind.ROOT, work.title, work)

    for synopsis in sorted(synopses, key=lambda s: s.created_at):
        root.children.append(_entity_node(NodeKind.SYNOPSIS, SYNOPSIS_TITLE, synopsis))

    if characters:
        container = SyncNode(
            kind=NodeKind.CHARACTERS,
            title=CHARACTERS_TITLE,
            map_kind=CHARACTERS_CONTAINER,
            map_key=work.id,
        )
        container.children = [
            _entity_node(NodeKind.CHARACTER, c.name, c) for c in sorted(characters, key=_order_key)
        ]
        root.children.append(container)

    if settings:
        container = SyncNode(
            kind=NodeKind.SETTINGS,
            title=SETTINGS_TITLE,
            map_kind=SETTINGS_CONTAINER,
            map_key=work.id,
        )
        container.children = [
            _entity_node(NodeKind.SETTING, s.name, s) for s in sorted(settings, key=_order_key)
        ]
        root.children.append(container)

    if chapters or episodes:
        serial = SyncNode(
            kind=NodeKind.SERIAL,
            title=SERIAL_TITLE,
            map_kind=SERIAL_CONTAINER,
            map_key=work.id,
        )
        chapter_ids = {c.id for c in chapters}
        ordered_episodes = sorted(
            episodes, key=lambda e: (e.order is None, e.order or 0, e.episode_number)
        )
        for chapter in sorted(chapters, key=_order_key):
            node = _entity_node(NodeKind.CHAPTER, chapter.title, chapter)
            node.children = [
                _episode_node(e) for e in ordered_episodes if e.chapter_id == chapter.id
            ]
            serial.children.append(node)
        # Episodes pointing at a chapter that no longer exists count as chapterless
        serial.children.extend(
            _episode_node(e) for e in ordered_episodes if e.chapter_id not in chapter_ids
        )
        root.children.append(serial)

    return root


def build_tag_tree(categories: list[TagCategory], tags: list[Tag]) -> SyncNode:
    """Global tag tree: Tags -> category pages -> tag pages."""
    root = SyncNode(kind=NodeKind.TAGS, title=TAGS_TITLE, map_key=TAGS_ROOT_SLOT)
    by_category: dict[str, list[Tag]] = {}
    for tag in tags:
        by_category.setdefault(tag.category_id, []).append(tag)

    for category in sorted(categories, key=_order_key):
        node = _entity_node(NodeKind.TAG_CATEGORY, category.name, category)
        node.children = [
            _entity_node(NodeKind.TAG, t.name, t)
            for t in sorted(by_category.get(category.id, []), key=_order_key)
        ]
        root.children.append(node)
    # Tags whose category is gone stay visible so the push can report them
    known = {c.id for c in categories}
    root.children.extend(
        _entity_node(NodeKind.TAG, t.name, t)
        for t in sorted(tags, key=_order_key)
        if t.category_id not in known
    )
    return root

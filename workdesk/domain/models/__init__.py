"""Domain records for works and everything they own."""

from workdesk.domain.models.entities import (
    ENTITY_MODELS,
    Chapter,
    Character,
    EntityKind,
    Episode,
    Setting,
    SettingType,
    StructurePhase,
    Synopsis,
    SynopsisSection,
    SynopsisStructure,
    SyncTrackedRecord,
    Tag,
    TagCategory,
    Work,
    count_characters,
    html_to_text,
)

__all__ = [
    "ENTITY_MODELS",
    "Chapter",
    "Character",
    "EntityKind",
    "Episode",
    "Setting",
    "SettingType",
    "StructurePhase",
    "SyncTrackedRecord",
    "Synopsis",
    "SynopsisSection",
    "SynopsisStructure",
    "Tag",
    "TagCategory",
    "Work",
    "count_characters",
    "html_to_text",
]

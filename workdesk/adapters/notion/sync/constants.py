"""Constants for Notion synchronization."""

from workdesk.domain.models import EntityKind

# Structural page titles, with the Korean titles older clients created
SYNOPSIS_TITLE = "Synopsis"
CHARACTERS_TITLE = "Characters"
SETTINGS_TITLE = "Settings"
SERIAL_TITLE = "Serial"
TAGS_TITLE = "Tags"

TITLE_ALIASES: dict[str, frozenset[str]] = {
    SYNOPSIS_TITLE: frozenset({SYNOPSIS_TITLE, "시놉시스"}),
    CHARACTERS_TITLE: frozenset({CHARACTERS_TITLE, "캐릭터"}),
    SETTINGS_TITLE: frozenset({SETTINGS_TITLE, "설정"}),
    SERIAL_TITLE: frozenset({SERIAL_TITLE, "연재"}),
    TAGS_TITLE: frozenset({TAGS_TITLE, "태그", "tags 태그"}),
}

STATS_MARKER = "📊 Serial statistics"

# PageIdMap container kinds (keyed by work id) and root slots
CHARACTERS_CONTAINER = "characters_container"
SETTINGS_CONTAINER = "settings_container"
SERIAL_CONTAINER = "serial_container"
TAGS_ROOT_SLOT = "tags_root"

PAYLOAD_FORMAT = "workdesk.entity"
PAYLOAD_VERSION = 1

# Notion limits
RICH_TEXT_CHUNK_LIMIT = 1800
MAX_RICH_TEXT_CHUNKS = 100

DEFAULT_BATCH_WIDTH = 3
DEFAULT_BATCH_DELAY_SECONDS = 0.4

# Push order; tags come after every work tree
KIND_ORDER: tuple[EntityKind, ...] = (
    EntityKind.WORK,
    EntityKind.SYNOPSIS,
    EntityKind.CHARACTER,
    EntityKind.SETTING,
    EntityKind.CHAPTER,
    EntityKind.EPISODE,
    EntityKind.TAG_CATEGORY,
    EntityKind.TAG,
)


def matches_title(title: str, canonical: str) -> bool:
    return title.strip() in TITLE_ALIASES.get(canonical, frozenset({canonical}))


# LocalStore attribute holding each kind
STORE_COLLECTIONS: dict[EntityKind, str] = {
    EntityKind.WORK: "works",
    EntityKind.SYNOPSIS: "synopses",
    EntityKind.CHARACTER: "characters",
    EntityKind.SETTING: "settings",
    EntityKind.CHAPTER: "chapters",
    EntityKind.EPISODE: "episodes",
    EntityKind.TAG_CATEGORY: "tag_categories",
    EntityKind.TAG: "tags",
}

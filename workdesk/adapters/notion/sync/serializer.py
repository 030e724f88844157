"""Encode entities into Notion blocks and decode them back.

Every entity page carries one ``code`` block (language ``json``) holding the
record, preceded by a few plain paragraphs for people reading the page in
Notion. Decoding only trusts the code block; pages written by older clients
are read through the legacy paragraph format.
"""

from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING, Any

from workdesk.adapters.notion.sync.constants import (
    MAX_RICH_TEXT_CHUNKS,
    PAYLOAD_FORMAT,
    PAYLOAD_VERSION,
    RICH_TEXT_CHUNK_LIMIT,
)
from workdesk.adapters.notion.sync.errors import SerializationError
from workdesk.domain.models import (
    Character,
    EntityKind,
    Episode,
    Setting,
    Work,
    html_to_text,
)

if TYPE_CHECKING:
    from workdesk.adapters.notion.models import NotionBlock
    from workdesk.domain.models import SyncTrackedRecord

# Sync bookkeeping travels in the payload but never counts as a content change
_SYNC_STATE_KEYS = ("syncedAt", "isDirty")

_PHASES = ("gi", "seung", "jeon", "gyeol")

# Legacy "Label: value" lines; keys are record field aliases
_LEGACY_LABELS: dict[str, str] = {
    "id": "id",
    "title": "title",
    "제목": "title",
    "name": "name",
    "이름": "name",
    "description": "description",
    "설명": "description",
    "category": "category",
    "카테고리": "category",
    "age": "age",
    "나이": "age",
    "role": "role",
    "역할": "role",
    "type": "type",
    "유형": "type",
    "notes": "notes",
    "메모": "notes",
    "order": "order",
    "순서": "order",
    "episode": "episodeNumber",
    "회차": "episodeNumber",
    "views": "viewCount",
    "조회수": "viewCount",
    "subscribers": "subscriberCount",
    "구독자": "subscriberCount",
}
_LEGACY_LINE_RE = re.compile(r"^\s*([^:：]{1,20})\s*[:：]\s*(.*)$")
_INT_FIELDS = {"age", "order", "episodeNumber", "viewCount", "subscriberCount"}


def chunk_text(text: str, limit: int = RICH_TEXT_CHUNK_LIMIT) -> list[str]:
    """Split text into pieces Notion accepts in a single rich_text item."""
    if not text:
        return []
    return [text[i : i + limit] for i in range(0, len(text), limit)]


def rich_text(text: str) -> list[dict[str, Any]]:
    chunks = chunk_text(text)
    if len(chunks) > MAX_RICH_TEXT_CHUNKS:
        raise SerializationError(
            f"text of {len(text)} characters needs {len(chunks)} rich_text items "
            f"(limit {MAX_RICH_TEXT_CHUNKS})"
        )
    return [{"type": "text", "text": {"content": chunk}} for chunk in chunks]


def paragraph(text: str) -> dict[str, Any]:
    return {"object": "block", "type": "paragraph", "paragraph": {"rich_text": rich_text(text)}}


def heading(text: str, level: int = 2) -> dict[str, Any]:
    block_type = f"heading_{level}"
    return {"object": "block", "type": block_type, block_type: {"rich_text": rich_text(text)}}


def bulleted(text: str) -> dict[str, Any]:
    return {
        "object": "block",
        "type": "bulleted_list_item",
        "bulleted_list_item": {"rich_text": rich_text(text)},
    }


def code_block(text: str, language: str = "json") -> dict[str, Any]:
    return {
        "object": "block",
        "type": "code",
        "code": {"rich_text": rich_text(text), "language": language},
    }


def entity_fields(entity: SyncTrackedRecord) -> dict[str, Any]:
    """Record fields as stored in the payload (aliases, JSON-safe values)."""
    return entity.model_dump(mode="json", by_alias=True)


def _readable_text(entity: SyncTrackedRecord) -> str:
    if isinstance(entity, Episode):
        return html_to_text(entity.content)
    if isinstance(entity, (Work, Character, Setting)):
        return entity.description
    return ""


def encode(kind: EntityKind, entity: SyncTrackedRecord) -> list[dict[str, Any]]:
    """Blocks for an entity page.

    Raises:
        SerializationError: The payload does not fit a single code block
    """
    payload = {
        "format": PAYLOAD_FORMAT,
        "version": PAYLOAD_VERSION,
        "kind": kind.value,
        "fields": entity_fields(entity),
    }
    text = json.dumps(payload, ensure_ascii=False, sort_keys=True)
    try:
        blocks = [paragraph(line) for line in _readable_text(entity).split("\n") if line.strip()]
        blocks.append(code_block(text))
    except SerializationError as exc:
        raise SerializationError(f"{kind.value} {entity.id}: {exc}") from exc
    return blocks


def decode_payload(blocks: list[NotionBlock]) -> tuple[EntityKind | None, dict[str, Any]] | None:
    """Find the entity payload in page blocks.

    Returns ``(kind, fields)``; kind is None for legacy pages. Returns None when
    nothing recognisable is on the page.
    """
    for block in blocks:
        if block.type != "code":
            continue
        try:
            data = json.loads(block.text)
        except ValueError:
            continue
        if not isinstance(data, dict) or data.get("format") != PAYLOAD_FORMAT:
            continue
        fields = data.get("fields")
        if not isinstance(fields, dict):
            continue
        try:
            kind = EntityKind(data.get("kind"))
        except ValueError:
            kind = None
        return kind, fields

    legacy = _decode_legacy(blocks)
    if legacy is None:
        return None
    return None, legacy


def decode(blocks: list[NotionBlock]) -> dict[str, Any] | None:
    """Record fields from page blocks, or None for title-derived defaults."""
    decoded = decode_payload(blocks)
    return decoded[1] if decoded else None


def _decode_legacy(blocks: list[NotionBlock]) -> dict[str, Any] | None:
    paragraphs = [b.text for b in blocks if b.type == "paragraph" and b.text.strip()]
    if not paragraphs:
        return None

    joined = "\n".join(paragraphs).strip()
    structure = _parse_structure(joined)
    if structure is not None:
        return {"structure": structure}

    fields: dict[str, Any] = {}
    body: list[str] = []
    for line in joined.split("\n"):
        match = _LEGACY_LINE_RE.match(line)
        key = _LEGACY_LABELS.get(match.group(1).strip().lower()) if match else None
        if match is None or key is None:
            body.append(line)
            continue
        value: Any = match.group(2).strip()
        if key in _INT_FIELDS:
            try:
                value = int(value.replace(",", ""))
            except ValueError:
                continue
        fields[key] = value

    text = "\n".join(body).strip()
    if text:
        fields["text"] = text
    return fields or None


def _parse_structure(text: str) -> dict[str, Any] | None:
    if not text.startswith("{"):
        return None
    try:
        data = json.loads(text)
    except ValueError:
        return None
    if isinstance(data, dict) and any(phase in data for phase in _PHASES):
        return data
    return None


def normalize_blocks(blocks: list[dict[str, Any]] | list[NotionBlock]) -> list[tuple[str, ...]]:
    """Comparable shape of page content: (type, text[, language]) per block."""
    normalized: list[tuple[str, ...]] = []
    for block in blocks:
        if isinstance(block, dict):
            block_type = block.get("type", "")
            data = block.get(block_type) or {}
            text = "".join(
                (item.get("text") or {}).get("content", item.get("plain_text", ""))
                for item in data.get("rich_text", [])
            )
        else:
            block_type = block.type
            data = block.payload
            text = block.text
        if block_type == "code":
            normalized.append((block_type, _comparable_payload(text), data.get("language", "")))
        else:
            normalized.append((block_type, text))
    return normalized


def _comparable_payload(text: str) -> str:
    """Payload text with sync state dropped; other code blocks pass through."""
    try:
        data = json.loads(text)
    except ValueError:
        return text
    if not isinstance(data, dict) or data.get("format") != PAYLOAD_FORMAT:
        return text
    fields = data.get("fields")
    if not isinstance(fields, dict):
        return text
    data["fields"] = {k: v for k, v in fields.items() if k not in _SYNC_STATE_KEYS}
    return json.dumps(data, ensure_ascii=False, sort_keys=True)

"""Tests for entity <-> block encoding."""

import json
import unittest
from datetime import UTC, datetime
from typing import Any

import pytest

from workdesk.adapters.notion.models import NotionBlock
from workdesk.adapters.notion.sync.constants import PAYLOAD_FORMAT, RICH_TEXT_CHUNK_LIMIT
from workdesk.adapters.notion.sync.errors import SerializationError
from workdesk.adapters.notion.sync.serializer import (
    chunk_text,
    code_block,
    decode,
    decode_payload,
    encode,
    heading,
    normalize_blocks,
    paragraph,
)
from workdesk.domain.models import (
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
    Tag,
    TagCategory,
    Work,
)


def as_blocks(requests: list[dict[str, Any]]) -> list[NotionBlock]:
    """Blocks as Notion returns them after an append."""
    return [NotionBlock.from_api({**block, "id": f"b{i}"}) for i, block in enumerate(requests)]


class TestEncode(unittest.TestCase):
    def setUp(self):
        self.episode = Episode(
            id="e1",
            work_id="w1",
            chapter_id="ch1",
            episode_number=4,
            title="Fog",
            content="<p>First line.</p><p>Second &amp; last.</p>",
            body_width=600,
            is_dirty=True,
        )

    def test_readable_paragraphs_precede_payload(self):
        blocks = encode(EntityKind.EPISODE, self.episode)

        self.assertEqual([b["type"] for b in blocks], ["paragraph", "paragraph", "code"])
        self.assertEqual(
            normalize_blocks(blocks[:2]),
            [("paragraph", "First line."), ("paragraph", "Second & last.")],
        )
        self.assertEqual(blocks[-1]["code"]["language"], "json")

    def test_payload_uses_aliases_and_carries_sync_state(self):
        blocks = encode(EntityKind.EPISODE, self.episode)
        code_text = "".join(i["text"]["content"] for i in blocks[-1]["code"]["rich_text"])
        payload = json.loads(code_text)

        self.assertEqual(payload["format"], PAYLOAD_FORMAT)
        self.assertEqual(payload["kind"], "episode")
        fields = payload["fields"]
        self.assertEqual(fields["episodeNumber"], 4)
        self.assertEqual(fields["chapterId"], "ch1")
        self.assertIs(fields["isDirty"], True)
        self.assertIsNone(fields["syncedAt"])

    def test_comparison_ignores_sync_state(self):
        synced = self.episode.model_copy()
        synced.mark_synced()

        self.assertNotEqual(
            encode(EntityKind.EPISODE, self.episode)[-1],
            encode(EntityKind.EPISODE, synced)[-1],
        )

        self.assertEqual(
            normalize_blocks(encode(EntityKind.EPISODE, self.episode)),
            normalize_blocks(encode(EntityKind.EPISODE, synced)),
        )

    def test_round_trip_restores_record(self):
        character = Character(
            id="c1", work_id="w1", name="Ara", description="Pilot\nof the harbor", age=27
        )

        fields = decode(as_blocks(encode(EntityKind.CHARACTER, character)))

        self.assertEqual(Character.model_validate(fields), character)

    def test_long_payload_is_chunked(self):
        long_episode = self.episode.model_copy(update={"content": "<p>" + "가" * 5000 + "</p>"})

        blocks = encode(EntityKind.EPISODE, long_episode)

        code_items = blocks[-1]["code"]["rich_text"]
        self.assertGreater(len(code_items), 2)
        self.assertTrue(all(len(i["text"]["content"]) <= RICH_TEXT_CHUNK_LIMIT for i in code_items))
        fields = decode(as_blocks(blocks))
        self.assertEqual(fields["content"], long_episode.content)

    def test_oversized_payload_raises(self):
        huge = self.episode.model_copy(update={"content": "x" * (RICH_TEXT_CHUNK_LIMIT * 101)})

        with self.assertRaises(SerializationError) as ctx:
            encode(EntityKind.EPISODE, huge)
        self.assertIn("episode e1", str(ctx.exception))

    def test_synopsis_has_payload_only(self):
        synopsis = Synopsis(
            id="syn",
            work_id="w1",
            structure=SynopsisStructure(gi=[SynopsisSection(id="s1", title="Arrival")]),
        )

        blocks = encode(EntityKind.SYNOPSIS, synopsis)

        self.assertEqual([b["type"] for b in blocks], ["code"])
        fields = decode(as_blocks(blocks))
        self.assertEqual(fields["structure"]["gi"][0]["title"], "Arrival")


CREATED = datetime(2025, 3, 1, 9, 0, tzinfo=UTC)
SYNCED = datetime(2025, 3, 2, 18, 30, 15, tzinfo=UTC)

ROUND_TRIP_RECORDS = [
    Work(
        id="w1",
        title="Moonlit Harbor",
        description="A port town story.\nTwo lines.",
        category="fantasy",
        tags=["t1", "t2"],
        created_at=CREATED,
        updated_at=SYNCED,
        synced_at=SYNCED,
    ),
    Synopsis(
        id="syn",
        work_id="w1",
        structure=SynopsisStructure(
            gi=[SynopsisSection(id="s1", title="Arrival", content="<p>She lands.</p>")],
            seung=[SynopsisSection(id="s2", title="Rumors", order=1)],
            jeon=[SynopsisSection(id="s3", title="Storm", content="<p>Wind.</p>", order=2)],
            gyeol=[SynopsisSection(id="s4", title="Departure", order=3)],
        ),
        character_ids=["c1"],
        setting_ids=["st1"],
        created_at=CREATED,
        is_dirty=True,
    ),
    Character(
        id="c1",
        work_id="w1",
        name="Ara",
        description="Pilot\nof the harbor",
        age=27,
        role="protagonist",
        is_main_character=True,
        order=2,
        notes="Afraid of bells",
        synopsis_ids=["syn"],
        created_at=CREATED,
        synced_at=SYNCED,
    ),
    Setting(
        id="st1",
        work_id="w1",
        name="Lantern Quay",
        description="Docks lit all night",
        type=SettingType.LOCATION,
        order=1,
        notes="Smells of tar",
        synopsis_ids=["syn"],
        created_at=CREATED,
        is_dirty=True,
    ),
    Chapter(
        id="ch1",
        work_id="w1",
        title="Part One",
        structure_type=StructurePhase.JEON,
        order=3,
        created_at=CREATED,
        synced_at=SYNCED,
        is_dirty=True,
    ),
    Episode(
        id="e1",
        work_id="w1",
        chapter_id="ch1",
        episode_number=12,
        title="Fog",
        content="<p>The fog rolled in.</p>",
        word_count=18,
        word_count_without_spaces=15,
        published_at=SYNCED,
        subscriber_count=1204,
        view_count=56000,
        order=4,
        layout_mode="page",
        body_width=800,
        first_line_indent="1",
        paragraph_spacing="0.5",
        created_at=CREATED,
        synced_at=SYNCED,
    ),
    TagCategory(id="cat1", name="Genre", order=2, created_at=CREATED, is_dirty=True),
    Tag(
        id="t1",
        category_id="cat1",
        name="Fantasy",
        order=5,
        is_new=True,
        created_at=CREATED,
        synced_at=SYNCED,
    ),
]


@pytest.mark.parametrize("record", ROUND_TRIP_RECORDS, ids=lambda r: type(r).__name__)
def test_every_kind_round_trips_exactly(record):
    kind = next(k for k, model in ENTITY_MODELS.items() if type(record) is model)

    decoded = decode_payload(as_blocks(encode(kind, record)))

    assert decoded is not None
    decoded_kind, fields = decoded
    assert decoded_kind is kind
    assert ENTITY_MODELS[kind].model_validate(fields) == record


class TestChunkText(unittest.TestCase):
    def test_empty(self):
        self.assertEqual(chunk_text(""), [])

    def test_split_sizes(self):
        self.assertEqual([len(c) for c in chunk_text("a" * 25, limit=10)], [10, 10, 5])


class TestDecode(unittest.TestCase):
    def test_empty_page_decodes_to_none(self):
        self.assertIsNone(decode([]))
        self.assertIsNone(decode(as_blocks([heading("Only a heading")])))

    def test_foreign_code_block_is_ignored(self):
        blocks = as_blocks([code_block('{"hello": "world"}'), paragraph("plain body")])

        self.assertEqual(decode(blocks), {"text": "plain body"})

    def test_unknown_kind_still_returns_fields(self):
        payload = {"format": PAYLOAD_FORMAT, "version": 1, "kind": "poem", "fields": {"id": "p"}}
        blocks = as_blocks([code_block(json.dumps(payload))])

        self.assertEqual(decode_payload(blocks), (None, {"id": "p"}))

    def test_legacy_labels_in_korean_and_english(self):
        blocks = as_blocks(
            [
                paragraph("이름: 아라"),
                paragraph("나이: 27"),
                paragraph("Role: protagonist"),
                paragraph("She grew up on the docks."),
            ]
        )

        kind, fields = decode_payload(blocks)

        self.assertIsNone(kind)
        self.assertEqual(
            fields,
            {"name": "아라", "age": 27, "role": "protagonist", "text": "She grew up on the docks."},
        )

    def test_legacy_counts_with_thousands_separator(self):
        fields = decode(as_blocks([paragraph("조회수: 1,204"), paragraph("회차: x")]))

        self.assertEqual(fields, {"viewCount": 1204})

    def test_legacy_synopsis_structure_json(self):
        structure = {"gi": [{"id": "s1", "title": "Arrival"}], "seung": []}

        fields = decode(as_blocks([paragraph(json.dumps(structure))]))

        self.assertEqual(fields, {"structure": structure})


class TestNormalizeBlocks(unittest.TestCase):
    def test_request_and_response_shapes_compare_equal(self):
        requests = [heading("Stats", level=2), paragraph("hello"), code_block("{}")]

        self.assertEqual(normalize_blocks(requests), normalize_blocks(as_blocks(requests)))

    def test_code_language_is_significant(self):
        self.assertNotEqual(
            normalize_blocks([code_block("{}", "json")]),
            normalize_blocks([code_block("{}", "plain text")]),
        )

    def test_payload_field_changes_are_significant(self):
        tag = Tag(id="t1", category_id="cat1", name="Fantasy", created_at=CREATED)
        renamed = tag.model_copy(update={"name": "Dark Fantasy", "is_dirty": True})

        self.assertNotEqual(
            normalize_blocks(encode(EntityKind.TAG, tag)),
            normalize_blocks(encode(EntityKind.TAG, renamed)),
        )


if __name__ == "__main__":
    unittest.main()

"""Push scenarios against the in-memory Notion workspace."""

from __future__ import annotations

import pytest

from workdesk.adapters.notion.client import NotionRetryableError
from workdesk.adapters.notion.sync import SyncPrerequisiteError
from workdesk.adapters.notion.sync.constants import STATS_MARKER
from workdesk.adapters.notion.sync.page_id_map import InMemoryPageIdMapStore, PageIdMap
from workdesk.adapters.notion.sync.service import NotionSyncService
from workdesk.domain.models import EntityKind, Tag

from tests.support.builders import T0, make_config, make_service, seed_sample_graph, seed_tags


def touch(collection, record_id: str, **changes) -> None:
    """Edit a stored record the way the app does: change fields and flag it dirty."""
    record = collection.records[record_id]
    for name, value in changes.items():
        setattr(record, name, value)
    record.is_dirty = True


@pytest.fixture
def seeded(fake_notion, store):
    seed_sample_graph(store)
    seed_tags(store)
    service, page_map, map_store = make_service(fake_notion, store)
    return service, page_map, map_store


@pytest.mark.asyncio
async def test_first_push_builds_page_tree(fake_notion, store, seeded):
    service, page_map, _ = seeded

    report = await service.push()

    assert report.success, report.errors
    assert report.items_synced == 13
    root = fake_notion.root_id
    assert fake_notion.child_titles(root) == ["Moonlit Harbor", "Tags"]

    work = fake_notion.find("Moonlit Harbor")
    assert fake_notion.child_titles(work.id) == ["Synopsis", "Characters", "Settings", "Serial"]
    assert fake_notion.child_titles(fake_notion.find("Characters").id) == ["Ara", "Bo"]
    assert fake_notion.child_titles(fake_notion.find("Settings").id) == ["Lantern Quay"]

    serial = fake_notion.find("Serial")
    assert fake_notion.child_titles(serial.id) == ["Part One", "Part Two", "Episode 3 - Interlude"]
    assert fake_notion.child_titles(fake_notion.find("Part One").id) == [
        "Episode 1 - Fog",
        "Episode 2",
    ]
    assert fake_notion.child_titles(fake_notion.find("Part Two").id) == []

    genre = fake_notion.find("Genre")
    assert genre.parent_id == fake_notion.find("Tags").id
    assert fake_notion.child_titles(genre.id) == ["Fantasy", "Mystery"]

    assert page_map.get(EntityKind.EPISODE, "w1-e1") == fake_notion.find("Episode 1 - Fog").id
    assert page_map.get("serial_container", "w1") == serial.id
    assert page_map.get_root("tags_root") == fake_notion.find("Tags").id


@pytest.mark.asyncio
async def test_push_marks_records_synced_and_persists_map(fake_notion, store, seeded):
    service, _, map_store = seeded

    await service.push()

    for records in store.all_records().values():
        for record in records.values():
            assert record.synced_at is not None
            assert record.is_dirty is False
    assert map_store.saves >= 1
    assert set(map_store.blob["entities"]) >= {
        "work",
        "synopsis",
        "character",
        "setting",
        "chapter",
        "episode",
        "tag_category",
        "tag",
        "characters_container",
        "settings_container",
        "serial_container",
    }


@pytest.mark.asyncio
async def test_episode_page_holds_readable_text_and_payload(fake_notion, store, seeded):
    service, _, _ = seeded

    await service.push()

    episode = fake_notion.find("Episode 1 - Fog")
    types = [b["type"] for b in fake_notion.content(episode.id)]
    assert types == ["paragraph", "code"]
    assert fake_notion.content_text(episode.id)[0] == "The fog rolled in."


@pytest.mark.asyncio
async def test_serial_statistics_section(fake_notion, store, seeded):
    service, _, _ = seeded

    await service.push()

    serial = fake_notion.find("Serial")
    assert fake_notion.content_text(serial.id) == [
        STATS_MARKER,
        "Chapters: 2",
        "Episodes: 3",
        "Characters (with spaces): 34",
        "Characters (without spaces): 30",
    ]


@pytest.mark.asyncio
async def test_second_push_without_changes_makes_no_writes(fake_notion, store, seeded):
    service, _, map_store = seeded
    await service.push()
    fake_notion.reset_calls()
    store.puts.clear()
    saves = map_store.saves

    report = await service.push()

    assert report.success
    assert fake_notion.mutations == 0
    assert report.items_synced == 0
    assert report.kinds["episode"].unchanged == 3
    assert report.kinds["tag"].unchanged == 2
    assert sum(store.puts.values()) == 0
    assert map_store.saves == saves


@pytest.mark.asyncio
async def test_single_edit_touches_only_its_path(fake_notion, store, seeded):
    service, page_map, _ = seeded
    await service.push()
    e1_page = page_map.get(EntityKind.EPISODE, "w1-e1")
    e1_blocks = [b["id"] for b in fake_notion.pages[e1_page].blocks]
    fake_notion.reset_calls()

    touch(store.episodes, "w1-e2", content="<p>Bells ring twice.</p>")
    report = await service.push()

    assert report.success
    assert report.items_synced == 1
    assert report.kinds["episode"].synced == 1
    assert fake_notion.calls["create_page"] == 0
    assert fake_notion.calls["update_page"] == 0
    e2_page = page_map.get(EntityKind.EPISODE, "w1-e2")
    assert fake_notion.content_text(e2_page)[0] == "Bells ring twice."
    assert [b["id"] for b in fake_notion.pages[e1_page].blocks] == e1_blocks
    assert store.episodes.records["w1-e2"].is_dirty is False
    # Statistics follow the edited episode
    serial = fake_notion.find("Serial")
    assert "Characters (with spaces): 45" in fake_notion.content_text(serial.id)


@pytest.mark.asyncio
async def test_rename_updates_title_in_place(fake_notion, store, seeded):
    service, page_map, _ = seeded
    await service.push()
    page_id = page_map.get(EntityKind.CHARACTER, "w1-c2")
    fake_notion.reset_calls()

    touch(store.characters, "w1-c2", name="Bo the Smuggler")
    await service.push()

    assert fake_notion.pages[page_id].title == "Bo the Smuggler"
    assert fake_notion.calls["create_page"] == 0


@pytest.mark.asyncio
async def test_failed_page_does_not_stop_siblings(fake_notion, store, seeded):
    service, page_map, _ = seeded
    fake_notion.fail("create_page", "Ara")

    report = await service.push()

    assert not report.success
    assert report.kinds["character"].failed == 1
    assert report.kinds["character"].synced == 1
    assert any(err.startswith("character w1-c1: create_page") for err in report.errors)
    assert fake_notion.child_titles(fake_notion.find("Characters").id) == ["Bo"]
    assert fake_notion.child_titles(fake_notion.find("Serial").id)
    assert store.characters.records["w1-c1"].synced_at is None
    assert page_map.get(EntityKind.CHARACTER, "w1-c1") is None

    fake_notion.failures.clear()
    fake_notion.reset_calls()
    retry = await service.push()

    assert retry.success
    assert fake_notion.calls["create_page"] == 1
    assert fake_notion.mutations == 1
    assert fake_notion.child_titles(fake_notion.find("Characters").id) == ["Bo", "Ara"]


@pytest.mark.asyncio
async def test_failed_container_skips_its_subtree(fake_notion, store, seeded):
    service, _, _ = seeded
    fake_notion.fail("create_page", "Serial")

    report = await service.push()

    assert report.kinds["serial"].failed == 1
    assert report.kinds["chapter"].skipped == 2
    assert report.kinds["episode"].skipped == 3
    assert report.kinds["character"].synced == 2
    assert "Serial" not in fake_notion.child_titles(fake_notion.find("Moonlit Harbor").id)


@pytest.mark.asyncio
async def test_transient_failure_is_reported_retryable(fake_notion, store, seeded):
    service, _, _ = seeded
    fake_notion.fail(
        "create_page", "Lantern Quay", NotionRetryableError("upstream 502", status_code=502)
    )

    report = await service.push()

    assert len(report.retryable_errors) == 1
    assert report.permanent_errors == []


@pytest.mark.asyncio
async def test_orphan_tag_fails_alone(fake_notion, store, seeded):
    service, _, _ = seeded
    store.tags.seed(Tag(id="t9", category_id="gone", name="Lost", created_at=T0))

    report = await service.push()

    assert report.kinds["tag"].failed == 1
    assert report.kinds["tag"].synced == 2
    assert any("category gone has no page" in err for err in report.errors)


@pytest.mark.asyncio
async def test_archived_page_is_restored_not_duplicated(fake_notion, store, seeded):
    service, page_map, _ = seeded
    await service.push()
    ara = page_map.get(EntityKind.CHARACTER, "w1-c1")
    fake_notion.archive(ara)
    fake_notion.reset_calls()

    touch(store.characters, "w1-c1", description="Harbor pilot, retired")
    report = await service.push()

    assert report.success
    assert fake_notion.calls["create_page"] == 0
    assert fake_notion.pages[ara].archived is False
    assert page_map.get(EntityKind.CHARACTER, "w1-c1") == ara


@pytest.mark.asyncio
async def test_archived_work_is_restored_for_a_changed_episode(fake_notion, store, seeded):
    service, page_map, _ = seeded
    await service.push()
    work_page = page_map.get(EntityKind.WORK, "w1")
    fake_notion.archive(work_page)
    fake_notion.reset_calls()

    touch(store.episodes, "w1-e3", content="<p>Side story, extended.</p>")
    report = await service.push()

    assert report.success, report.errors
    assert fake_notion.calls["create_page"] == 0
    assert fake_notion.pages[work_page].archived is False
    assert report.kinds["work"].synced == 1
    assert store.works.records["w1"].is_dirty is False
    e3_page = page_map.get(EntityKind.EPISODE, "w1-e3")
    assert fake_notion.pages[e3_page].archived is False
    assert fake_notion.content_text(e3_page)[0] == "Side story, extended."
    assert store.episodes.records["w1-e3"].is_dirty is False


@pytest.mark.asyncio
async def test_archived_chapter_is_restored_for_a_changed_episode(fake_notion, store, seeded):
    service, page_map, _ = seeded
    await service.push()
    chapter_page = page_map.get(EntityKind.CHAPTER, "w1-ch1")
    fake_notion.archive(chapter_page)
    fake_notion.reset_calls()

    touch(store.episodes, "w1-e1", title="Thick Fog")
    report = await service.push()

    assert report.success, report.errors
    assert fake_notion.calls["create_page"] == 0
    assert fake_notion.pages[chapter_page].archived is False
    e1_page = page_map.get(EntityKind.EPISODE, "w1-e1")
    assert fake_notion.pages[e1_page].title == "Episode 1 - Thick Fog"
    assert fake_notion.pages[e1_page].parent_id == chapter_page
    assert store.episodes.records["w1-e1"].is_dirty is False


@pytest.mark.asyncio
async def test_archived_tag_category_is_restored_for_a_changed_tag(fake_notion, store, seeded):
    service, page_map, _ = seeded
    await service.push()
    category_page = page_map.get(EntityKind.TAG_CATEGORY, "cat1")
    fake_notion.archive(category_page)
    fake_notion.reset_calls()

    touch(store.tags, "t2", name="Cozy Mystery")
    report = await service.push()

    assert report.success, report.errors
    assert fake_notion.calls["create_page"] == 0
    assert fake_notion.pages[category_page].archived is False
    assert "Cozy Mystery" in fake_notion.child_titles(category_page)


@pytest.mark.asyncio
async def test_unchanged_ancestors_are_only_read(fake_notion, store, seeded):
    service, _, _ = seeded
    await service.push()
    store.puts.clear()
    fake_notion.reset_calls()

    touch(store.episodes, "w1-e1", content="<p>The fog lifted.</p>")
    report = await service.push()

    assert report.kinds["work"].unchanged == 1
    assert report.kinds["chapter"].unchanged == 2
    assert store.puts["episodes"] == 1
    assert sum(store.puts.values()) == 1
    assert fake_notion.calls["update_page"] == 0


@pytest.mark.asyncio
async def test_chapters_are_pushed_before_chapterless_episodes(fake_notion, store, seeded):
    service, _, _ = seeded

    await service.push()

    created = [page.title for page in fake_notion.pages.values()]
    interlude = created.index("Episode 3 - Interlude")
    assert created.index("Part Two") < interlude
    assert created.index("Episode 1 - Fog") < interlude
    assert created.index("Episode 2") < interlude


@pytest.mark.asyncio
async def test_lost_work_page_rebuilds_whole_subtree(fake_notion, store, seeded):
    service, page_map, _ = seeded
    await service.push()
    old_work = page_map.get(EntityKind.WORK, "w1")
    fake_notion.destroy(old_work)

    touch(store.works, "w1", description="A port town story, revised.")
    report = await service.push()

    assert report.success, report.errors
    new_work = page_map.get(EntityKind.WORK, "w1")
    assert new_work != old_work
    assert fake_notion.child_titles(new_work) == ["Synopsis", "Characters", "Settings", "Serial"]
    part_one = fake_notion.find("Part One")
    assert fake_notion.child_titles(part_one.id) == ["Episode 1 - Fog", "Episode 2"]
    assert fake_notion.pages[page_map.get(EntityKind.EPISODE, "w1-e1")].parent_id == part_one.id


@pytest.mark.asyncio
async def test_forced_push_repairs_remote_drift_only(fake_notion, store, seeded):
    service, page_map, _ = seeded
    await service.push()
    bo = page_map.get(EntityKind.CHARACTER, "w1-c2")
    fake_notion.pages[bo].blocks.clear()
    fake_notion.reset_calls()

    plain = await service.push()
    assert fake_notion.mutations == 0
    assert plain.items_synced == 0

    forced = await service.push(force=True)

    assert forced.items_synced == 1
    assert forced.kinds["character"].synced == 1
    assert fake_notion.calls["create_page"] == 0
    assert fake_notion.content_text(bo)[0] == "Smuggler"


@pytest.mark.asyncio
async def test_existing_map_is_reused_across_service_instances(fake_notion, store, seeded):
    service, _, map_store = seeded
    await service.push()
    fake_notion.reset_calls()

    second = NotionSyncService(
        make_config(fake_notion.root_id),
        store,
        PageIdMap(map_store),
        client_factory=lambda: fake_notion,
    )
    touch(store.works, "w1", title="Moonlit Harbor (revised)")
    await second.push()

    assert fake_notion.calls["create_page"] == 0
    assert fake_notion.child_titles(fake_notion.root_id) == ["Moonlit Harbor (revised)", "Tags"]


@pytest.mark.asyncio
async def test_missing_token_is_a_prerequisite_error(fake_notion, store):
    map_store = InMemoryPageIdMapStore()
    service = NotionSyncService(
        make_config(fake_notion.root_id, api_key=""),
        store,
        PageIdMap(map_store),
        client_factory=lambda: fake_notion,
    )

    with pytest.raises(SyncPrerequisiteError, match="NOTION_API_KEY"):
        await service.push()
    assert fake_notion.calls == {}
    assert map_store.saves == 0


@pytest.mark.asyncio
async def test_missing_root_page_is_a_prerequisite_error(fake_notion, store, seeded):
    service, _, _ = seeded
    fake_notion.destroy(fake_notion.root_id)

    with pytest.raises(SyncPrerequisiteError, match="not found"):
        await service.push()
    assert fake_notion.mutations == 0


@pytest.mark.asyncio
async def test_archived_root_page_is_a_prerequisite_error(fake_notion, store, seeded):
    service, _, _ = seeded
    fake_notion.pages[fake_notion.root_id].archived = True

    with pytest.raises(SyncPrerequisiteError, match="archived"):
        await service.push()


@pytest.mark.asyncio
async def test_preview_makes_no_remote_calls(fake_notion, store, seeded):
    service, _, _ = seeded

    preview = await service.preview()

    assert fake_notion.calls == {}
    assert len(preview["would_write"]) == 13
    assert {item["reason"] for item in preview["would_write"]} == {"never_synced"}
    assert preview["unchanged"] == 0

    await service.push()
    touch(store.settings, "w1-st1", notes="foggy")

    after = await service.preview()
    assert after["would_write"] == [
        {"kind": "setting", "id": "w1-st1", "title": "Lantern Quay", "reason": "dirty"}
    ]
    assert after["unchanged"] == 12

    forced = await service.preview(force=True)
    assert len(forced["would_write"]) == 13
    assert {item["reason"] for item in forced["would_write"]} == {"forced"}


@pytest.mark.asyncio
async def test_status_counts_local_mapped_and_pending(fake_notion, store, seeded):
    service, _, _ = seeded

    before = await service.status()
    assert before["configured"] is True
    assert before["kinds"]["episode"] == {"local": 3, "mapped": 0, "pending": 3}

    await service.push()
    after = await service.status()
    assert after["kinds"]["episode"] == {"local": 3, "mapped": 3, "pending": 0}
    assert after["kinds"]["tag"] == {"local": 2, "mapped": 2, "pending": 0}

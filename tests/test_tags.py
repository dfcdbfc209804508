"""Tests for tag management."""

import pytest

from mediaindex.database import MediaEntry, MediaKind, Store
from mediaindex.errors import DatabaseBusy, DuplicateName, NotFound
from mediaindex.scanner import ScanState
from mediaindex.tags import TagManager


def add_entry(store: Store, path: str) -> int:
    return store.upsert_entry(MediaEntry(path=path, kind=MediaKind.AUDIO, modified_at=1.0))


@pytest.fixture
def state() -> ScanState:
    return ScanState()


@pytest.fixture
def tags(store: Store, state: ScanState) -> TagManager:
    return TagManager(store, state)


class TestTagManager:
    def test_create_and_list(self, tags: TagManager):
        tags.create_tag("favourites")
        tags.create_tag("  archive  ")
        assert [t.name for t in tags.list_tags()] == ["archive", "favourites"]

    def test_empty_name_rejected(self, tags: TagManager):
        with pytest.raises(ValueError):
            tags.create_tag("   ")

    def test_duplicate_name_rejected(self, tags: TagManager):
        tags.create_tag("favourites")
        with pytest.raises(DuplicateName):
            tags.create_tag("favourites")

    def test_assign_twice_is_noop(self, store: Store, tags: TagManager):
        tag_id = tags.create_tag("favourites")
        entry_id = add_entry(store, "/m/a.mp3")

        tags.assign(tag_id, entry_id)
        tags.assign(tag_id, entry_id)

        assert tags.get_tag(tag_id).entry_count == 1
        assert [e.id for e in tags.entries_for_tag(tag_id)] == [entry_id]

    def test_assign_missing_tag(self, store: Store, tags: TagManager):
        entry_id = add_entry(store, "/m/a.mp3")
        with pytest.raises(NotFound):
            tags.assign(999, entry_id)

    def test_delete_tag_keeps_entries(self, store: Store, tags: TagManager):
        tag_id = tags.create_tag("favourites")
        entry_id = add_entry(store, "/m/a.mp3")
        tags.assign(tag_id, entry_id)

        assert tags.delete_tag(tag_id)

        assert store.get_entry_by_id(entry_id) is not None
        assert tags.tags_for_entry(entry_id) == []
        assert tags.entries_for_tag(tag_id) == []
        with pytest.raises(NotFound):
            tags.get_tag(tag_id)

    def test_deleting_entry_drops_assignment(self, store: Store, tags: TagManager):
        tag_id = tags.create_tag("favourites")
        entry_id = add_entry(store, "/m/a.mp3")
        tags.assign(tag_id, entry_id)

        store.delete_entry("/m/a.mp3")

        assert tags.get_tag(tag_id).entry_count == 0

    def test_unassign(self, store: Store, tags: TagManager):
        tag_id = tags.create_tag("favourites")
        entry_id = add_entry(store, "/m/a.mp3")
        tags.assign(tag_id, entry_id)
        assert tags.unassign(tag_id, entry_id)
        assert not tags.unassign(tag_id, entry_id)

    def test_writes_refused_during_scan(self, store: Store, tags: TagManager, state: ScanState):
        tag_id = tags.create_tag("favourites")
        entry_id = add_entry(store, "/m/a.mp3")
        state.try_activate("/m", True)

        with pytest.raises(DatabaseBusy):
            tags.create_tag("new")
        with pytest.raises(DatabaseBusy):
            tags.assign(tag_id, entry_id)
        with pytest.raises(DatabaseBusy):
            tags.delete_tag(tag_id)
        assert tags.get_tag_by_name("favourites").id == tag_id

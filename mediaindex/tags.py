"""User tag management."""

import logging

from mediaindex.database import MediaEntry, Store, Tag
from mediaindex.errors import NotFound
from mediaindex.scanner.state import ScanState

logger = logging.getLogger(__name__)


class TagManager:
    """Tag lifecycle and assignment.

    Deleting a tag removes its assignments only; entries and files are
    never touched. Writes are refused with ``DatabaseBusy`` during a scan.
    """

    def __init__(self, store: Store, scan_state: ScanState | None = None):
        self.store = store
        self.scan_state = scan_state

    def _ensure_writable(self, operation: str) -> None:
        if self.scan_state is not None:
            self.scan_state.ensure_idle(operation)

    def create_tag(self, name: str) -> int:
        """Create a tag. Raises ``DuplicateName`` if the name is taken."""
        name = name.strip()
        if not name:
            raise ValueError("Tag name must not be empty")
        self._ensure_writable("create a tag")
        tag_id = self.store.create_tag(name)
        logger.info("Created tag %r (id=%d)", name, tag_id)
        return tag_id

    def delete_tag(self, tag_id: int) -> bool:
        self._ensure_writable("delete a tag")
        deleted = self.store.delete_tag(tag_id)
        if deleted:
            logger.info("Deleted tag id=%d", tag_id)
        return deleted

    def assign(self, tag_id: int, entry_id: int) -> None:
        """Assign a tag to an entry. Assigning twice is a no-op."""
        self._ensure_writable("assign a tag")
        if not self.store.assign_tag(tag_id, entry_id):
            logger.debug("Tag %d already assigned to entry %d", tag_id, entry_id)

    def unassign(self, tag_id: int, entry_id: int) -> bool:
        self._ensure_writable("unassign a tag")
        return self.store.unassign_tag(tag_id, entry_id)

    def get_tag(self, tag_id: int) -> Tag:
        tag = self.store.get_tag(tag_id)
        if tag is None:
            raise NotFound(f"Tag {tag_id} does not exist")
        return tag

    def get_tag_by_name(self, name: str) -> Tag:
        tag = self.store.get_tag_by_name(name)
        if tag is None:
            raise NotFound(f"No tag named {name!r}")
        return tag

    def list_tags(self) -> list[Tag]:
        return self.store.list_tags()

    def entries_for_tag(self, tag_id: int) -> list[MediaEntry]:
        """Entries carrying the tag. Empty for a deleted or unknown tag."""
        return self.store.entries_for_tag(tag_id)

    def tags_for_entry(self, entry_id: int) -> list[Tag]:
        return self.store.tags_for_entry(entry_id)

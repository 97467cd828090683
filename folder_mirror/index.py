"""Content-hash index used to reuse duplicate files instead of copying them."""

from typing import Optional

from .models import Entry, EntryKind


class DedupIndex:
    """
    Map content hashes to the first file entry seen with that hash.

    An index belongs to a single snapshot. Registration is first-wins: a
    second file with identical content is not indexed separately.
    """

    def __init__(self):
        self._entries: dict[str, Entry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, content_hash: str) -> bool:
        return content_hash in self._entries

    def register(self, entry: Entry) -> bool:
        """Index ``entry`` under its resolved hash. Returns True if it was added."""
        content_hash = entry.cached_content_hash
        if content_hash is None or content_hash in self._entries:
            return False
        self._entries[content_hash] = entry
        return True

    def lookup(self, content_hash: Optional[str]) -> Optional[Entry]:
        if content_hash is None:
            return None
        return self._entries.get(content_hash)

    def find_duplicate(self, entry: Entry) -> Optional[Entry]:
        """Find an indexed file with the same content as ``entry``."""
        if entry.kind is not EntryKind.FILE:
            return None
        return self.lookup(entry.content_hash)

    def forget(self, entry: Entry) -> None:
        """Withdraw ``entry`` if it is the one indexed under its hash."""
        content_hash = entry.cached_content_hash
        if content_hash is not None and self._entries.get(content_hash) is entry:
            del self._entries[content_hash]

"""Snapshot trees: a collection root, its entries and their dedup index."""

import errno
import logging
import stat
from typing import Iterator, Optional, TextIO

from .fsops import stat_entry
from .index import DedupIndex
from .models import Entry, EntryKind

_log = logging.getLogger(__name__)

_log_debug = _log.debug


def classify_mode(mode: int) -> EntryKind:
    """Map an ``lstat`` mode to an entry kind; links are never followed."""
    if stat.S_ISLNK(mode):
        return EntryKind.SYMBOLIC_LINK
    if stat.S_ISDIR(mode):
        return EntryKind.DIRECTORY
    if stat.S_ISREG(mode):
        return EntryKind.FILE
    return EntryKind.SPECIAL


class Snapshot:
    """
    A point-in-time tree of filesystem entries.

    The root is a synthetic collection whose children are the independent
    scan roots. Each snapshot owns the dedup index of its file entries.
    """

    def __init__(self):
        self.index = DedupIndex()
        self.root = Entry(self, None, None, None, EntryKind.COLLECTION)

    @property
    def roots(self) -> list[Entry]:
        return self.root.children

    def create_entry(
        self,
        parent: Optional[Entry],
        path: str,
        name: str,
        hash_files: bool = True,
    ) -> Entry:
        """
        Classify ``path`` from disk and link a new entry under ``parent``.

        Files are hashed straight away (registering them in the index)
        unless ``hash_files`` is off, in which case the hash is read on
        first use.
        """
        info = stat_entry(path)
        if info is None:
            raise FileNotFoundError(errno.ENOENT, "Cannot classify entry", path)

        entry = Entry(self, parent, path, name, classify_mode(info.mode))
        if entry.kind is EntryKind.FILE and hash_files and entry.content_hash is None:
            _log_debug("Unreadable file, content hash unknown: %s", path)
        return entry

    def iter_entries(self) -> Iterator[Entry]:
        """Yield every entry below the collection root."""
        for root in self.roots:
            yield from root.iter_subtree()

    def find_duplicate(self, entry: Entry) -> Optional[Entry]:
        return self.index.find_duplicate(entry)

    def report(self, out: TextIO) -> None:
        """Write one ``path (name)`` line per entry."""
        for entry in self.iter_entries():
            print(f"{entry.path} ({entry.name})", file=out)

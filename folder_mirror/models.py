"""Data models for folder mirror: snapshot entries, kinds and options."""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Iterator, Optional

from .fsops import (
    StatInfo,
    copy_file,
    copy_link,
    copy_metadata,
    make_directory,
    move_path,
    read_file_hash,
    remove_path,
    stat_entry,
)

if TYPE_CHECKING:
    from .snapshot import Snapshot

_log = logging.getLogger(__name__)

_log_info = _log.info
_log_warn = _log.warning

# Marks a cached field that has not been read from disk or a snapshot yet.
_UNRESOLVED = object()


class EntryKind(Enum):
    """Kinds of snapshot entries, valued by their persisted names."""
    COLLECTION = "Collection"
    DIRECTORY = "Directory"
    FILE = "File"
    SYMBOLIC_LINK = "SymbolicLink"
    SPECIAL = "Special"


class ChangeError(Exception):
    """Raised when a change cannot be applied to the reference tree."""


@dataclass(frozen=True)
class MirrorOptions:
    """Options for one reconciliation run."""

    #: Live directories to mirror (defaults to the snapshot's own roots)
    roots: tuple[str, ...] = ()
    #: Snapshot database file for the reference tree
    db_path: Optional[str] = None
    #: Reference directory, scanned when no snapshot database exists yet
    reference_dir: Optional[str] = None
    #: Apply the changes instead of only reporting them
    update: bool = False
    #: Perform all deletions before any copy or update
    clean_first: bool = False
    #: Root under which timestamped generation backups are created
    generations: Optional[str] = None
    #: Regular expressions matched against absolute paths to skip
    ignore_patterns: tuple[str, ...] = ()
    #: Reuse duplicate content already present in the reference tree
    dedup: bool = True
    #: Discard an existing snapshot database and rebuild it
    rebuild: bool = False
    #: List the reference and live trees before comparing
    list_trees: bool = False
    #: Show scanning progress
    progress: bool = False


def join_name(parent_name: Optional[str], name: str) -> str:
    """Join a child name onto its parent's logical name."""
    if parent_name is None:
        return name
    return os.path.join(parent_name, name)


class Entry:
    """
    One node of a snapshot tree.

    Metadata (length, timestamps, attribute bits and, for files, the
    content hash) is read lazily from disk on first access and cached, or
    pre-loaded from a persisted snapshot. ``reset()`` drops the cache.
    """

    def __init__(
        self,
        snapshot: "Snapshot",
        parent: Optional["Entry"],
        path: Optional[str],
        name: Optional[str],
        kind: EntryKind,
    ):
        self.snapshot = snapshot
        self.parent = parent
        self.path = path
        self.name = name
        self.kind = kind
        self.delete_pending = False
        self.children: list[Entry] = []

        self._info = _UNRESOLVED
        self._length = _UNRESOLVED
        self._creation_time = _UNRESOLVED
        self._last_write_time = _UNRESOLVED
        self._attributes = _UNRESOLVED
        self._content_hash = _UNRESOLVED

        if parent is not None:
            parent.children.append(self)

    @classmethod
    def from_record(
        cls,
        snapshot: "Snapshot",
        parent: Optional["Entry"],
        path: Optional[str],
        name: Optional[str],
        kind: EntryKind,
        length: Optional[int] = None,
        creation_time: Optional[int] = None,
        last_write_time: Optional[int] = None,
        attributes: Optional[int] = None,
        content_hash: Optional[str] = None,
    ) -> "Entry":
        """Build an entry from persisted values without touching the filesystem."""
        entry = cls(snapshot, parent, path, name, kind)
        if length is not None:
            entry._length = length
        if creation_time is not None:
            entry._creation_time = creation_time
        if last_write_time is not None:
            entry._last_write_time = last_write_time
        if attributes is not None:
            entry._attributes = attributes
        if content_hash is not None:
            entry._content_hash = content_hash
            snapshot.index.register(entry)
        return entry

    def __repr__(self) -> str:
        return f"Entry({self.kind.value}, {self.name!r})"

    @property
    def basename(self) -> Optional[str]:
        """The final path component, which children are matched by."""
        if self.path is None:
            return None
        return os.path.basename(self.path)

    def _stat(self) -> Optional[StatInfo]:
        if self._info is _UNRESOLVED:
            self._info = stat_entry(self.path) if self.path else None
        return self._info

    @property
    def length(self) -> Optional[int]:
        if self._length is _UNRESOLVED:
            info = self._stat()
            self._length = info.length if info else None
        return self._length

    @property
    def creation_time(self) -> Optional[int]:
        if self._creation_time is _UNRESOLVED:
            info = self._stat()
            self._creation_time = info.creation_time if info else None
        return self._creation_time

    @property
    def last_write_time(self) -> Optional[int]:
        if self._last_write_time is _UNRESOLVED:
            info = self._stat()
            self._last_write_time = info.last_write_time if info else None
        return self._last_write_time

    @property
    def attributes(self) -> Optional[int]:
        if self._attributes is _UNRESOLVED:
            info = self._stat()
            self._attributes = info.attributes if info else None
        return self._attributes

    @property
    def content_hash(self) -> Optional[str]:
        """
        The cached content hash, computed on first access for files.

        Resolving the hash registers this entry in the snapshot's dedup
        index. Unreadable files and non-file entries have no hash.
        """
        if self._content_hash is _UNRESOLVED:
            if self.kind is EntryKind.FILE and self.path:
                self._content_hash = read_file_hash(self.path)
            else:
                self._content_hash = None
            if self._content_hash is not None:
                self.snapshot.index.register(self)
        return self._content_hash

    @property
    def cached_content_hash(self) -> Optional[str]:
        """The content hash if already resolved, without reading the file."""
        if self._content_hash is _UNRESOLVED:
            return None
        return self._content_hash

    @property
    def current_content_hash(self) -> Optional[str]:
        """Hash the file as it is on disk now, bypassing the cache."""
        if self.kind is not EntryKind.FILE or not self.path:
            return None
        return read_file_hash(self.path)

    def reset(self) -> None:
        """Forget cached metadata so it is re-read from disk on next access."""
        self.snapshot.index.forget(self)
        self._info = _UNRESOLVED
        self._length = _UNRESOLVED
        self._creation_time = _UNRESOLVED
        self._last_write_time = _UNRESOLVED
        self._attributes = _UNRESOLVED
        self._content_hash = _UNRESOLVED

    def iter_subtree(self) -> Iterator["Entry"]:
        """Yield this entry and all of its descendants, parents first."""
        yield self
        for child in self.children:
            yield from child.iter_subtree()

    def find_child(self, name: str) -> Optional["Entry"]:
        for child in self.children:
            if child.basename == name:
                return child
        return None

    def find_or_create_child(self, name: str) -> "Entry":
        """Return the named child, creating it from what is on disk if missing."""
        child = self.find_child(name)
        if child is None:
            child = self.snapshot.create_entry(
                self, os.path.join(self.path, name), join_name(self.name, name)
            )
        return child

    def detach(self) -> None:
        """Unlink this entry from its parent and withdraw it from the dedup index."""
        if self.parent is not None:
            self.parent.children.remove(self)
            self.parent = None
        for entry in self.iter_subtree():
            self.snapshot.index.forget(entry)

    def mark_delete_pending(self) -> None:
        for entry in self.iter_subtree():
            entry.delete_pending = True

    def exists(self) -> bool:
        return self.path is not None and os.path.lexists(self.path)

    def copy_to(self, target: str) -> None:
        """Copy this entry's filesystem content to exactly ``target``."""
        if os.path.abspath(target) == os.path.abspath(self.path):
            return

        if self.kind is EntryKind.FILE:
            copy_file(self.path, target)
        elif self.kind is EntryKind.DIRECTORY:
            make_directory(target)
            for child in self.children:
                child.copy_to(os.path.join(target, child.basename))
            copy_metadata(self.path, target)
        elif self.kind is EntryKind.SYMBOLIC_LINK:
            copy_link(self.path, target)
        else:
            _log_warn("Skipping %s: cannot copy %s entries", self.path, self.kind.value)

    def copy_into(self, target_dir: "Entry", dedup: bool = True) -> None:
        """
        Copy this subtree into ``target_dir`` and link its counterpart there.

        For files, content already present in the target snapshot is reused
        when ``dedup`` is set: a duplicate that is about to be deleted is
        moved into place, any other duplicate is copied from instead of this
        entry. Either way the result carries this entry's metadata.
        """
        if target_dir.kind is EntryKind.COLLECTION or target_dir.path is None:
            raise ChangeError(f"Cannot copy {self.path} into a collection root")

        base_name = self.basename
        target_path = os.path.join(target_dir.path, base_name)

        if self.kind is EntryKind.FILE:
            other = target_dir.snapshot.index.find_duplicate(self) if dedup else None
            if other is not None and other.exists():
                if other.delete_pending:
                    _log_info("optimizing by moving %s to %s", other.path, target_path)
                    other.move_to(target_path)
                else:
                    _log_info("optimizing by copying %s to %s", other.path, target_path)
                    other.copy_to(target_path)
                # Mode bits and times come from this entry, not the duplicate.
                if os.path.abspath(target_path) != os.path.abspath(self.path):
                    copy_metadata(self.path, target_path)
            else:
                self.copy_to(target_path)
            target_dir.find_or_create_child(base_name)

        elif self.kind is EntryKind.DIRECTORY:
            make_directory(target_path)
            new_dir = target_dir.find_or_create_child(base_name)
            for child in self.children:
                child.copy_into(new_dir, dedup)
            if os.path.abspath(target_path) != os.path.abspath(self.path):
                copy_metadata(self.path, target_path)

        elif self.kind is EntryKind.SYMBOLIC_LINK:
            self.copy_to(target_path)
            target_dir.find_or_create_child(base_name)

        else:
            _log_warn("Skipping %s: cannot copy %s entries", self.path, self.kind.value)

    def move_to(self, target: str) -> None:
        """Move the underlying filesystem object; the entry's old path is gone."""
        move_path(self.path, target)
        self.snapshot.index.forget(self)

    def delete_subtree(self) -> None:
        """Remove the underlying filesystem object, recursively for directories."""
        if self.exists():
            remove_path(self.path)

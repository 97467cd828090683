"""Folder scanning functionality."""

import logging
import os
import re
from typing import Iterable, Optional, Pattern, Union

from tqdm import tqdm

from .models import Entry, EntryKind, join_name
from .snapshot import Snapshot

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_warn = _log.warning


class ScanError:
    """Record of a path that failed to scan."""

    def __init__(self, name: str, path: str, error: str):
        self.name = name
        self.path = path
        self.error = error

    def __repr__(self) -> str:
        return f"ScanError({self.path!r}, {self.error!r})"


def compile_ignore_patterns(
    patterns: Iterable[Union[str, Pattern]],
) -> list[Pattern]:
    """Compile ignore patterns (regular expressions searched in absolute paths)."""
    return [re.compile(pattern) for pattern in patterns]


def is_ignored(path: str, patterns: list[Pattern]) -> bool:
    return any(pattern.search(path) for pattern in patterns)


class _Walker:
    """Recursive directory walk that builds entries into one snapshot."""

    def __init__(self, snapshot: Snapshot, patterns: list[Pattern],
                 hash_files: bool, pbar: tqdm):
        self.snapshot = snapshot
        self.patterns = patterns
        self.hash_files = hash_files
        self.pbar = pbar
        self.errors: list[ScanError] = []

    def read_entry(self, parent: Entry, path: str, name: str) -> Optional[Entry]:
        if is_ignored(path, self.patterns):
            _log_debug("Ignoring %s", path)
            return None

        try:
            entry = self.snapshot.create_entry(parent, path, name, self.hash_files)
        except OSError as e:
            self.errors.append(ScanError(name, path, str(e)))
            _log_warn("Cannot read %s: %s", path, e)
            return None

        self.pbar.update(1)
        if entry.kind is EntryKind.DIRECTORY:
            self.read_directory(entry)
        return entry

    def read_directory(self, entry: Entry) -> None:
        try:
            names = sorted(os.listdir(entry.path))
        except OSError as e:
            # The directory stays in the tree without children.
            self.errors.append(ScanError(entry.name, entry.path, str(e)))
            _log_warn("Cannot list directory %s: %s", entry.path, e)
            return

        for name in names:
            self.read_entry(entry, os.path.join(entry.path, name),
                            join_name(entry.name, name))


def scan(
    paths: Iterable[str],
    ignore_patterns: Iterable[Union[str, Pattern]] = (),
    *,
    hash_files: bool = True,
    progress: bool = False,
    desc: str = "Scanning",
) -> tuple[Snapshot, list[ScanError]]:
    """
    Scan one or more directory trees into a single snapshot.

    Args:
        paths: Root paths; each becomes a child of the collection root,
            named by its basename
        ignore_patterns: Regular expressions; any path they match is left
            out together with its subtree
        hash_files: Hash files while scanning rather than on first use
        progress: Show a progress bar
        desc: Description for the progress bar

    Returns:
        Tuple of (snapshot, list of scan errors)
    """
    snapshot = Snapshot()
    patterns = compile_ignore_patterns(ignore_patterns)

    with tqdm(desc=desc, unit="entry", disable=not progress) as pbar:
        walker = _Walker(snapshot, patterns, hash_files, pbar)
        for path in paths:
            path = os.path.abspath(path)
            walker.read_entry(snapshot.root, path, os.path.basename(path))

    return snapshot, walker.errors

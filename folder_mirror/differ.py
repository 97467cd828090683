"""Compare a reference tree against a live tree."""

import logging
from typing import Optional

from .changes import Change, CopyChange, DeleteChange, UpdateChange
from .models import Entry, EntryKind

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_warn = _log.warning

# Directory sizes depend on the filesystem, not on what was mirrored.
_SIZED_KINDS = (EntryKind.FILE, EntryKind.SYMBOLIC_LINK)


def _format_mode(mode: Optional[int]) -> str:
    return "unknown" if mode is None else oct(mode)


def change_reason(reference: Entry, live: Entry) -> Optional[str]:
    """
    Describe why ``reference`` no longer matches ``live``, or None.

    Only files are compared by content; an unknown hash on either side
    always counts as changed. Files and links are compared by length (a
    link's length is that of its target path). Every kind but the
    collection root is compared by attribute bits.
    """
    kind = reference.kind
    if kind is not live.kind:
        return f"kind changed ({kind.value} != {live.kind.value})"
    if kind is EntryKind.COLLECTION:
        return None

    if kind is EntryKind.FILE:
        ref_hash = reference.content_hash
        if ref_hash is None or ref_hash != live.content_hash:
            return "contents changed"
    if kind in _SIZED_KINDS and reference.length != live.length:
        return f"length changed ({reference.length} != {live.length})"
    if reference.attributes != live.attributes:
        return (f"attributes changed "
                f"({_format_mode(reference.attributes)} != "
                f"{_format_mode(live.attributes)})")
    return None


def _compare_entries(reference: Entry, live: Entry, changes: list[Change]) -> None:
    if (reference.kind is not EntryKind.COLLECTION
            and live.kind is not EntryKind.COLLECTION
            and reference.basename != live.basename):
        _log_warn("%s: name does not match %s", reference.path, live.path)
        return

    reason = change_reason(reference, live)
    if reason is not None:
        changes.append(UpdateChange(reference, live, reason))
        if reference.kind is not live.kind:
            # The update replaces the whole subtree.
            return

    unmatched = list(live.children)

    for child in reference.children:
        other = live.find_child(child.basename)
        if other is not None:
            if other in unmatched:
                unmatched.remove(other)
            _compare_entries(child, other, changes)
            continue

        child.mark_delete_pending()
        changes.append(DeleteChange(child))

    for child in unmatched:
        if reference.find_child(child.basename) is not None:
            continue
        changes.insert(0, CopyChange(child, reference))


def compare(
    reference: Entry,
    live: Entry,
    changes: Optional[list[Change]] = None,
) -> list[Change]:
    """
    Compute the changes that make ``reference`` match ``live``.

    Updates and deletions are appended in reference traversal order
    (ancestors first); copies are prepended so new content lands before
    removals. A file moved between positions shows up as a deletion plus a
    copy.

    Args:
        reference: Root of the reference tree
        live: Root of the live tree
        changes: Existing change list to add to

    Returns:
        The change list
    """
    if changes is None:
        changes = []
    _compare_entries(reference, live, changes)
    _log_debug("Found %d changes", len(changes))
    return changes

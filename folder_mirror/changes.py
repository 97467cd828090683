"""Changes that bring a reference tree into agreement with a live tree."""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, TextIO, Union

from .fsops import copy_metadata
from .models import Entry, EntryKind

if TYPE_CHECKING:
    from .mirror import MirrorSession

_log = logging.getLogger(__name__)

_log_debug = _log.debug


@dataclass(frozen=True)
class CopyChange:
    """``source`` exists live but has no counterpart under ``target_parent``."""
    source: Entry
    target_parent: Entry


@dataclass(frozen=True)
class UpdateChange:
    """``target`` and ``source`` share a position but differ."""
    target: Entry
    source: Entry
    reason: str


@dataclass(frozen=True)
class DeleteChange:
    """``target`` has no live counterpart."""
    target: Entry


Change = Union[CopyChange, UpdateChange, DeleteChange]


def report(change: Change) -> str:
    """Return the one-line audit message for a change."""
    match change:
        case CopyChange(source=source):
            return f"{source.name}: added"
        case UpdateChange(target=target, reason=reason):
            return f"{target.name}: {reason}"
        case DeleteChange(target=target):
            return f"{target.name}: removed"
    raise TypeError(f"Not a change: {change!r}")


def prepare(change: Change, session: "MirrorSession") -> None:
    """Back up whatever ``change`` is about to overwrite or remove."""
    match change:
        case DeleteChange(target=target):
            if target.exists():
                session.backup_entry(target)
        case UpdateChange(target=target):
            session.backup_entry(target)
        case CopyChange():
            pass


def perform(change: Change, session: "MirrorSession") -> None:
    """Apply ``change`` to the filesystem and to the reference tree."""
    match change:
        case CopyChange(source=source, target_parent=target_parent):
            source.copy_into(target_parent, session.dedup_enabled)

        case UpdateChange(target=target, source=source):
            if source.path != target.path:
                if source.kind is not target.kind:
                    parent = target.parent
                    target.detach()
                    target.delete_subtree()
                    source.copy_into(parent, session.dedup_enabled)
                elif source.kind is EntryKind.DIRECTORY:
                    # Children are reconciled by their own changes.
                    copy_metadata(source.path, target.path)
                else:
                    source.copy_to(target.path)
            # Re-read length, timestamps and hash from the updated object.
            target.reset()

        case DeleteChange(target=target):
            target.detach()
            if target.exists():
                target.delete_subtree()


def _execute(change: Change, session: "MirrorSession") -> None:
    print(report(change), file=session.out)
    if not isinstance(change, DeleteChange):
        prepare(change, session)
    perform(change, session)


def perform_changes(
    changes: list[Change],
    session: "MirrorSession",
    clean_first: bool = False,
) -> int:
    """
    Apply and clear a change list.

    Every deletion is backed up before anything is performed. With
    ``clean_first`` all deletions then run before the other changes;
    otherwise changes run in list order. Errors propagate and leave the
    changes applied so far in place.

    Returns:
        The number of changes applied
    """
    for change in changes:
        if isinstance(change, DeleteChange):
            prepare(change, session)

    if clean_first:
        for change in changes:
            if isinstance(change, DeleteChange):
                _execute(change, session)

    for change in changes:
        if not clean_first or not isinstance(change, DeleteChange):
            _execute(change, session)

    applied = len(changes)
    changes.clear()
    _log_debug("Applied %d changes", applied)
    return applied


def report_changes(
    changes: list[Change],
    out: TextIO,
    clean_first: bool = False,
) -> int:
    """Write the report lines of ``changes`` in the order they would run."""
    ordered = list(changes)
    if clean_first:
        ordered = ([c for c in changes if isinstance(c, DeleteChange)]
                   + [c for c in changes if not isinstance(c, DeleteChange)])
    for change in ordered:
        print(report(change), file=out)
    return len(ordered)

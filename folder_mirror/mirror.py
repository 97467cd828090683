"""Core mirror logic: load, scan, compare, apply and verify."""

import logging
import os
import sys
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, TextIO

from .changes import Change, perform_changes, report_changes
from .db import SnapshotDB
from .differ import compare
from .fsops import make_directory
from .models import Entry, MirrorOptions
from .scanner import ScanError, scan
from .snapshot import Snapshot

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning

SNAPSHOT_FILENAME = ".folder_mirror.db"

# The snapshot database (and SQLite's side files) never take part in a scan.
SNAPSHOT_IGNORE = r"\.folder_mirror\.db(-journal|-wal|-shm)?$"

GENERATION_FORMAT = "%Y-%m-%d.%H%M%S"


@dataclass
class MirrorResult:
    """Outcome of one reconciliation run."""
    changes_found: int = 0
    changes_applied: int = 0
    remaining: int = 0
    scan_errors: list[ScanError] = field(default_factory=list)
    generation_path: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.remaining == 0


class MirrorSession:
    """
    Reconciliation state for one reference snapshot.

    Holds the ordered change list between comparison and application,
    and the generation directory that receives backups.
    """

    def __init__(self, reference: Snapshot, options: MirrorOptions,
                 out: Optional[TextIO] = None):
        self.reference = reference
        self.options = options
        self.out = out if out is not None else sys.stdout
        self.changes: list[Change] = []
        self.generation_path: Optional[str] = None

    @property
    def dedup_enabled(self) -> bool:
        # With clean_first the duplicates may already be gone.
        return self.options.dedup and not self.options.clean_first

    def compare(self, live: Snapshot) -> list[Change]:
        return compare(self.reference.root, live.root, self.changes)

    def perform_changes(self) -> int:
        return perform_changes(self.changes, self, self.options.clean_first)

    def report_changes(self) -> int:
        return report_changes(self.changes, self.out, self.options.clean_first)

    def start_generation(self, now: Optional[datetime] = None) -> Optional[str]:
        """Choose a timestamped backup directory under the generations root."""
        if not self.options.generations:
            return None
        now = now or datetime.now()
        self.generation_path = os.path.join(
            self.options.generations, now.strftime(GENERATION_FORMAT)
        )
        _log_info("Backing up to generation directory: %s", self.generation_path)
        return self.generation_path

    def backup_entry(self, entry: Entry) -> None:
        """Copy ``entry`` under the generation directory, keeping its logical name."""
        if self.generation_path is None:
            return
        target = os.path.join(self.generation_path, entry.name)
        make_directory(os.path.dirname(target))
        _log_debug("Backing up %s to %s", entry.path, target)
        entry.copy_to(target)


def default_db_path(options: MirrorOptions) -> Optional[str]:
    if options.db_path:
        return options.db_path
    if options.reference_dir:
        return os.path.join(options.reference_dir, SNAPSHOT_FILENAME)
    return None


def build_reference(reference_dir: str, db_path: str,
                    progress: bool = False) -> tuple[Snapshot, list[ScanError]]:
    """Scan a reference directory and store it as a new snapshot."""
    if os.path.exists(db_path):
        os.unlink(db_path)
    make_directory(os.path.dirname(os.path.abspath(db_path)))

    _log_info("Building snapshot in %s ...", db_path)
    snapshot, errors = scan([reference_dir], [SNAPSHOT_IGNORE],
                            progress=progress, desc="Scanning reference")
    with SnapshotDB(db_path) as db:
        db.save(snapshot)
    return snapshot, errors


def load_reference(options: MirrorOptions,
                   result: MirrorResult) -> Optional[Snapshot]:
    """Load the reference snapshot, building it from the reference directory if needed."""
    db_path = default_db_path(options)
    if db_path is None:
        return None

    if options.rebuild and os.path.exists(db_path):
        _log_info("Discarding snapshot %s", db_path)
        os.unlink(db_path)

    if os.path.exists(db_path):
        _log_info("Reading snapshot %s ...", db_path)
        with SnapshotDB(db_path) as db:
            return db.load()

    if options.reference_dir:
        snapshot, errors = build_reference(options.reference_dir, db_path,
                                           options.progress)
        result.scan_errors.extend(errors)
        return snapshot

    return None


def _list_tree(title: str, snapshot: Snapshot, out: TextIO) -> None:
    print(title, file=out)
    snapshot.report(out)


def run_mirror(options: MirrorOptions, out: Optional[TextIO] = None) -> MirrorResult:
    """
    Reconcile the reference tree with the live roots.

    Without ``options.update`` the changes are only reported. With it they
    are applied, the snapshot is saved again, and the reference roots are
    rescanned to confirm nothing is left over; leftovers are reported and
    counted in ``MirrorResult.remaining``.

    With no reference the live scan is saved instead: to the database when
    one is configured, otherwise written to ``out`` as an SQL dump.
    """
    out = out if out is not None else sys.stdout
    result = MirrorResult()
    db_path = default_db_path(options)

    reference = load_reference(options, result)
    if reference is not None and options.list_trees:
        _list_tree("read snapshot state:", reference, out)

    roots = list(options.roots)
    if not roots and reference is not None:
        roots = [entry.path for entry in reference.roots]
    if not roots:
        raise ValueError("No live directories to scan")

    _log_info("Reading files ...")
    live, errors = scan(roots, list(options.ignore_patterns) + [SNAPSHOT_IGNORE],
                        progress=options.progress, desc="Scanning live")
    result.scan_errors.extend(errors)
    if options.list_trees:
        _list_tree("read file state:", live, out)

    if reference is None:
        if db_path is not None:
            _log_info("Writing snapshot %s ...", db_path)
            make_directory(os.path.dirname(os.path.abspath(db_path)))
            with SnapshotDB(db_path) as db:
                db.save(live)
        else:
            with SnapshotDB(":memory:") as db:
                db.save(live)
                db.dump(out)
        return result

    _log_info("Comparing details ...")
    session = MirrorSession(reference, options, out)
    session.compare(live)
    result.changes_found = len(session.changes)

    if not options.update:
        session.report_changes()
        session.changes.clear()
        return result

    if not session.changes:
        return result

    result.generation_path = session.start_generation()
    _log_info("Updating files ...")
    result.changes_applied = session.perform_changes()

    if db_path is not None:
        _log_info("Updating snapshot %s ...", db_path)
        with SnapshotDB(db_path) as db:
            db.save(reference)

    _log_info("Verifying snapshot ...")
    verify, _ = scan([entry.path for entry in reference.roots],
                     list(options.ignore_patterns) + [SNAPSHOT_IGNORE],
                     desc="Verifying")
    session.compare(verify)
    result.remaining = session.report_changes()
    session.changes.clear()
    if result.remaining:
        _log_warn("%d differences remain after update", result.remaining)

    return result

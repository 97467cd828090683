"""Command-line interface for folder mirror."""

import argparse
import logging
import re
import sys
from pathlib import Path
from typing import Optional

from .db import SnapshotError
from .mirror import default_db_path, run_mirror
from .models import ChangeError, MirrorOptions


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Mirror live folders into a reference folder tracked by a snapshot.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s -r /backup/docs /home/me/docs              # report differences
  %(prog)s -r /backup/docs -u -g /backup/gen /home/me/docs
  %(prog)s -d docs.db /home/me/docs                   # snapshot only
        """
    )

    parser.add_argument("roots", nargs="*", type=Path,
                        help="Live folders (default: the snapshot's own folders)")

    parser.add_argument(
        "--db", "-d",
        type=Path,
        default=None,
        help="Snapshot database of the reference tree (default: REFERENCE/.folder_mirror.db)"
    )
    parser.add_argument(
        "--reference", "-r",
        type=Path,
        default=None,
        help="Reference folder, scanned into a new snapshot when none exists"
    )
    parser.add_argument(
        "--update", "-u",
        action="store_true",
        help="Apply the changes to the reference folder"
    )
    parser.add_argument(
        "--clean-first", "-C",
        action="store_true",
        help="Delete stale entries before copying or updating anything"
    )
    parser.add_argument(
        "--generations", "-g",
        type=Path,
        default=None,
        help="Back up deleted and overwritten entries under a timestamped folder here"
    )
    parser.add_argument(
        "--ignore-file", "-x",
        type=Path,
        default=None,
        help="File of regular expressions, one per line; matching paths are skipped"
    )
    parser.add_argument(
        "--output", "-o",
        type=Path,
        default=None,
        help="Write change reports to this file instead of stdout"
    )
    parser.add_argument(
        "--list", "-D",
        dest="list_trees",
        action="store_true",
        help="List the snapshot and live trees"
    )
    parser.add_argument(
        "--no-dedup",
        action="store_true",
        help="Always copy from the live folder, never reuse duplicate content"
    )
    parser.add_argument(
        "--rebuild",
        action="store_true",
        help="Discard the snapshot and rebuild it from the reference folder"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Report progress"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Log debug messages"
    )

    return parser.parse_args(argv)


def load_ignore_patterns(path: Path) -> list[str]:
    """Read one regular expression per non-blank line."""
    with open(path, encoding="utf-8") as f:
        return [line.rstrip("\n") for line in f if line.strip()]


def validate_args(args: argparse.Namespace) -> None:
    """Validate command-line arguments."""
    for root in args.roots:
        if not root.exists():
            print(f"Error: Folder does not exist: {root}")
            sys.exit(1)
    if args.reference is not None and not args.reference.is_dir():
        print(f"Error: Reference folder is not a directory: {args.reference}")
        sys.exit(1)
    if not args.roots and args.db is None and args.reference is None:
        print("Error: Give live folders, a snapshot database or a reference folder")
        sys.exit(1)
    if args.update and args.db is None and args.reference is None:
        print("Error: --update needs a snapshot database or a reference folder")
        sys.exit(1)
    if args.ignore_file is not None:
        if not args.ignore_file.is_file():
            print(f"Error: Ignore file does not exist: {args.ignore_file}")
            sys.exit(1)
        for pattern in load_ignore_patterns(args.ignore_file):
            try:
                re.compile(pattern)
            except re.error as e:
                print(f"Error: Bad ignore pattern {pattern!r}: {e}")
                sys.exit(1)


def build_options(args: argparse.Namespace) -> MirrorOptions:
    """Turn parsed arguments into run options."""
    ignore = load_ignore_patterns(args.ignore_file) if args.ignore_file else []
    return MirrorOptions(
        roots=tuple(str(root.absolute()) for root in args.roots),
        db_path=str(args.db.absolute()) if args.db else None,
        reference_dir=str(args.reference.absolute()) if args.reference else None,
        update=args.update,
        clean_first=args.clean_first,
        generations=str(args.generations.absolute()) if args.generations else None,
        ignore_patterns=tuple(ignore),
        dedup=not args.no_dedup,
        rebuild=args.rebuild,
        list_trees=args.list_trees,
        progress=args.verbose,
    )


def setup_logging(verbose: bool, debug: bool) -> None:
    """Send log records to stderr at the requested level."""
    level = logging.WARNING
    if verbose:
        level = logging.INFO
    if debug:
        level = logging.DEBUG

    logger = logging.getLogger("folder_mirror")
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
        logger.addHandler(handler)


def main() -> None:
    """Main entry point."""
    args = parse_args()
    validate_args(args)
    setup_logging(args.verbose, args.debug)
    options = build_options(args)

    if args.verbose:
        print("=" * 60)
        print("FOLDER MIRROR")
        print("=" * 60)
        for root in options.roots:
            print(f"Live:      {root}")
        if options.reference_dir:
            print(f"Reference: {options.reference_dir}")
        print(f"Snapshot:  {default_db_path(options)}")

    out = open(args.output, "w", encoding="utf-8") if args.output else sys.stdout
    try:
        result = run_mirror(options, out)
    except SnapshotError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Use --rebuild with --reference to recreate the snapshot.", file=sys.stderr)
        sys.exit(1)
    except (ChangeError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\n\nInterrupted! The reference folder may be partially updated.")
        sys.exit(1)
    finally:
        if out is not sys.stdout:
            out.close()

    if args.verbose:
        print("\n" + "=" * 60)
        print(f"Changes found:   {result.changes_found}")
        print(f"Changes applied: {result.changes_applied}")
        if result.generation_path:
            print(f"Generation:      {result.generation_path}")
        if result.scan_errors:
            print(f"Scan errors:     {len(result.scan_errors)}")

    if not result.success:
        print(f"Warning: {result.remaining} differences remain after update",
              file=sys.stderr)
        sys.exit(2)

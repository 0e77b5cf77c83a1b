"""
Command line entry point for org-anki.

Usage:
    org-anki list notes.org             # Show the flashcard markers of a file
    org-anki push notes.org             # Push one file
    org-anki push-dir ~/org             # Push every .org file below a directory
    org-anki push-dir ~/org --resume    # Continue an interrupted directory push
    org-anki delete notes.org 42        # Delete the note of the marker on line 42
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from anki_connect import AnkiConnectClient
from org_anki.config_types import PushConfig, load_config_file
from org_anki.document import OrgDocument
from org_anki.errors import OrgAnkiError
from org_anki.push import check_preconditions, delete_note_at_line, list_markers, push_document
from org_anki.traversal import (
    clear_state,
    load_state,
    make_push_file,
    run_traversal,
    start_traversal,
)

DEFAULT_STATE_FILE = ".org_anki_push_state.json"


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Push flashcards marked in Org files to Anki via AnkiConnect.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__.split("Usage:", 1)[1],
    )
    parser.add_argument(
        "--anki-connect-url",
        default=None,
        help="AnkiConnect endpoint (overrides config; default: http://localhost:8765).",
    )
    parser.add_argument("--deck", default=None, help="Deck for new notes (overrides config).")
    parser.add_argument("--note-type", default=None, help="Note type for new notes (overrides config).")
    parser.add_argument(
        "--create-decks",
        action="store_true",
        help="Create missing decks before adding notes.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Print debug logging.")

    subparsers = parser.add_subparsers(dest="command", required=True)

    list_parser = subparsers.add_parser("list", help="List flashcard markers in a file.")
    list_parser.add_argument("file", type=Path)

    push_parser = subparsers.add_parser("push", help="Push all flashcards of a file.")
    push_parser.add_argument("file", type=Path)

    dir_parser = subparsers.add_parser("push-dir", help="Push all flashcards below a directory.")
    dir_parser.add_argument("directory", type=Path)
    dir_parser.add_argument(
        "--ignore",
        action="append",
        default=[],
        help="Repeatable glob of paths to skip (added to the configured ignore patterns).",
    )
    dir_parser.add_argument(
        "--state-file",
        type=Path,
        default=None,
        help=f"Where to keep the resume state (default: <directory>/{DEFAULT_STATE_FILE}).",
    )
    dir_parser.add_argument(
        "--resume",
        action="store_true",
        help="Continue an interrupted push from the state file.",
    )
    dir_parser.add_argument(
        "--delay",
        type=float,
        default=0.0,
        help="Seconds to pause between documents (default: %(default)s).",
    )

    delete_parser = subparsers.add_parser("delete", help="Delete the note of the marker on a line.")
    delete_parser.add_argument("file", type=Path)
    delete_parser.add_argument("line", type=int)

    args = parser.parse_args(argv)
    if getattr(args, "delay", 0) < 0:
        parser.error("--delay must be non-negative.")
    return args


def _print_markers(console: Console, document: OrgDocument) -> None:
    occurrences = list_markers(document)
    table = Table(title=document.name, box=box.SIMPLE)
    table.add_column("Line", justify="right")
    table.add_column("Style")
    table.add_column("Note id")
    table.add_column("Suspended")
    table.add_column("Text")
    for occurrence in occurrences:
        preview = " ".join(occurrence.body(document.text).split())
        if len(preview) > 60:
            preview = preview[:57] + "..."
        table.add_row(
            str(occurrence.source_line),
            occurrence.style.value,
            str(occurrence.note_id) if occurrence.note_id else "[green]new[/green]",
            "yes" if occurrence.suspended else "",
            escape(preview),
        )
    console.print(table)
    console.print(f"{len(occurrences)} flashcards")


def _push_directory(console: Console, args: argparse.Namespace, client: AnkiConnectClient, config: PushConfig) -> int:
    directory = args.directory.expanduser().resolve()
    state_path = args.state_file or directory / DEFAULT_STATE_FILE

    state = load_state(state_path) if args.resume else None
    if state is not None and Path(state.root).resolve() != directory:
        print(
            f"Error: {state_path} belongs to a push of {state.root}, not {directory}. "
            "Use another --state-file or drop --resume.",
            file=sys.stderr,
        )
        return 1
    if state is not None:
        console.print(f"Resuming: {len(state.pending_files)} files left under {state.root}")
    else:
        clear_state(state_path)
        state, report = start_traversal(directory, suffix=config.suffix, ignore_patterns=config.ignore_patterns)
        console.print(report, markup=False)

    try:
        state = run_traversal(
            state,
            make_push_file(client, config),
            on_report=lambda line: console.print(line, markup=False),
            delay=args.delay,
            state_path=state_path,
        )
    except KeyboardInterrupt:
        console.print(f"[yellow]Interrupted.[/yellow] Resume with --resume (state in {state_path})")
        return 1

    console.print(f"Done. Pushed {state.pushed} flashcards from {state.processed} files.")
    for path, message in state.failures.items():
        console.print(f"[red]✗ {escape(path)}[/red]: {escape(message)}")
    return 1 if state.failures else 0


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entrypoint for org-anki."""
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    console = Console()

    data, config_path = load_config_file()
    try:
        config = PushConfig.from_namespace(args, data)
    except (ValueError, TypeError, ImportError, AttributeError) as e:
        raise SystemExit(f"Invalid config in {config_path}: {e}")
    if args.verbose and config_path:
        console.print(f"Config: {config_path}")

    try:
        if args.command == "list":
            _print_markers(console, OrgDocument.load(args.file))
            return 0

        client = AnkiConnectClient(config.anki_connect_url)
        check_preconditions(client, config)

        if args.command == "push":
            report = push_document(OrgDocument.load(args.file), client, config)
            console.print(
                f"Pushed {report.pushed} flashcards "
                f"({report.created} new, {report.updated} updated, {report.skipped} without clozes)."
            )
            for error in report.errors:
                console.print(f"[red]✗[/red] {escape(str(error))}")
            return 0 if report.ok else 1

        if args.command == "push-dir":
            return _push_directory(console, args, client, config)

        if args.command == "delete":
            note_id = delete_note_at_line(OrgDocument.load(args.file), args.line, client)
            console.print(f"Deleted note {note_id}.")
            return 0

    except (OrgAnkiError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 1


if __name__ == "__main__":
    raise SystemExit(main())

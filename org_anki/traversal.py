"""
Resumable directory push.

A directory push is a queue of documents worked off one document per step.
The state is an explicit value: ``step`` takes a ``TraversalState`` and
returns the next one, so any scheduler (a plain loop, a timer, an event
loop) can drive it and stop between steps. The state can be saved to a JSON
file after every step so an interrupted run resumes where it stopped.
"""

from __future__ import annotations

import fnmatch
import json
import logging
import time
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from org_anki.config_types import PushConfig
from org_anki.document import OrgDocument
from org_anki.errors import OrgAnkiError
from org_anki.push import PushReport, push_document

logger = logging.getLogger(__name__)

STATE_VERSION = 1

PushFile = Callable[[Path], PushReport]


@dataclass(frozen=True)
class TraversalState:
    root: Path
    pending_files: Tuple[Path, ...]
    processed: int = 0
    pushed: int = 0
    # Documents that were pushed to or failed, kept for inspection
    open_documents: Tuple[Path, ...] = ()
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def done(self) -> bool:
        return not self.pending_files


@dataclass(frozen=True)
class StepResult:
    state: TraversalState
    report: str
    done: bool
    push_report: Optional[PushReport] = None


def is_ignored(path: Path, root: Path, patterns: Iterable[str]) -> bool:
    """Match ignore patterns against the relative path and each of its parts."""
    relative = path.relative_to(root)
    candidates = [relative.as_posix(), *relative.parts]
    return any(fnmatch.fnmatch(candidate, pattern) for pattern in patterns for candidate in candidates)


def find_documents(root: Path, suffix: str = ".org", ignore_patterns: Iterable[str] = ()) -> List[Path]:
    patterns = list(ignore_patterns)
    return sorted(
        path
        for path in root.rglob(f"*{suffix}")
        if path.is_file() and not is_ignored(path, root, patterns)
    )


def start_traversal(
    root: Path,
    suffix: str = ".org",
    ignore_patterns: Iterable[str] = (),
) -> Tuple[TraversalState, str]:
    """Build the queue of documents to push; nothing is pushed yet."""
    root = Path(root).expanduser().resolve()
    if not root.is_dir():
        raise NotADirectoryError(f"Not a directory: {root}")
    pending = tuple(find_documents(root, suffix, ignore_patterns))
    state = TraversalState(root=root, pending_files=pending)
    return state, f"{len(pending)} files to push under {root}"


def step(state: TraversalState, push_file: PushFile) -> StepResult:
    """Push the next queued document."""
    if state.done:
        return StepResult(state, "Nothing left to push", done=True)

    path, pending = state.pending_files[0], state.pending_files[1:]
    push_report: Optional[PushReport] = None
    failures = state.failures
    open_documents = state.open_documents
    pushed = 0

    try:
        push_report = push_file(path)
    except (OrgAnkiError, OSError, UnicodeDecodeError) as e:
        logger.error("%s: %s", path, e)
        failures = {**failures, str(path): str(e)}
        open_documents = open_documents + (path,)
        report = f"{len(pending)} files left; {path} failed: {e}"
    else:
        pushed = push_report.pushed
        if push_report.errors:
            failures = {**failures, str(path): "; ".join(str(e) for e in push_report.errors)}
        if pushed or push_report.errors:
            open_documents = open_documents + (path,)
        report = f"{len(pending)} files left; pushed {pushed} from {path}"

    new_state = replace(
        state,
        pending_files=pending,
        processed=state.processed + 1,
        pushed=state.pushed + pushed,
        open_documents=open_documents,
        failures=failures,
    )
    return StepResult(new_state, report, done=new_state.done, push_report=push_report)


def make_push_file(client: Any, config: PushConfig) -> PushFile:
    """Load a document from disk and push it."""

    def push_file(path: Path) -> PushReport:
        document = OrgDocument.load(path)
        return push_document(document, client, config)

    return push_file


def run_traversal(
    state: TraversalState,
    push_file: PushFile,
    on_report: Optional[Callable[[str], None]] = None,
    delay: float = 0.0,
    state_path: Optional[Path] = None,
) -> TraversalState:
    """Drive ``step`` until the queue is empty, pausing ``delay`` seconds between steps."""
    while not state.done:
        result = step(state, push_file)
        state = result.state
        if state_path is not None:
            if state.done:
                clear_state(state_path)
            else:
                save_state(state, state_path)
        if on_report is not None:
            on_report(result.report)
        if not state.done and delay > 0:
            time.sleep(delay)
    return state


# ---------------------------------------------------------------------------
# Resume file
# ---------------------------------------------------------------------------


def save_state(state: TraversalState, path: Path) -> None:
    data = {
        "state_version": STATE_VERSION,
        "root": str(state.root),
        "pending_files": [str(p) for p in state.pending_files],
        "processed": state.processed,
        "pushed": state.pushed,
        "open_documents": [str(p) for p in state.open_documents],
        "failures": state.failures,
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2))


def load_state(path: Path) -> Optional[TraversalState]:
    """Load a saved traversal, or None if there is none."""
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError:
        raise SystemExit(f"State file {path} is corrupted; delete or fix it.")
    if data.get("state_version") != STATE_VERSION:
        raise SystemExit(f"State file {path} has an unknown version; delete it to start over.")
    return TraversalState(
        root=Path(data["root"]),
        pending_files=tuple(Path(p) for p in data.get("pending_files", [])),
        processed=data.get("processed", 0),
        pushed=data.get("pushed", 0),
        open_documents=tuple(Path(p) for p in data.get("open_documents", [])),
        failures=dict(data.get("failures", {})),
    )


def clear_state(path: Path) -> None:
    if path.exists():
        path.unlink()


__all__ = [
    "TraversalState",
    "StepResult",
    "is_ignored",
    "find_documents",
    "start_traversal",
    "step",
    "make_push_file",
    "run_traversal",
    "save_state",
    "load_state",
    "clear_state",
]

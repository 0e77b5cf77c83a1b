"""Tests for the resumable directory push in org_anki/traversal.py."""

import io
from pathlib import Path

import pytest

import anki_connect
from anki_connect import AnkiConnectClient
from org_anki.errors import DuplicateMarkerError
from org_anki.push import PushReport
from org_anki.traversal import (
    TraversalState,
    find_documents,
    is_ignored,
    load_state,
    make_push_file,
    run_traversal,
    save_state,
    start_traversal,
    step,
)


@pytest.fixture
def org_tree(tmp_path):
    """Five .org files, two of them in ignored places, plus a non-org file."""
    files = [
        "a.org",
        "notes/b.org",
        "notes/deep/c.org",
        "archive/old.org",
        ".hidden/d.org",
    ]
    for name in files:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(f"* {name}\n- _{Path(name).stem}_ @anki\n")
    (tmp_path / "notes" / "readme.txt").write_text("not org")
    return tmp_path


def recording_push(pushed=1):
    seen = []

    def push_file(path):
        seen.append(path)
        return PushReport(str(path), pushed=pushed)

    return push_file, seen


class TestStartTraversal:
    def test_counts_eligible_minus_ignored(self, org_tree):
        state, report = start_traversal(org_tree, ".org", ["archive", ".*"])
        assert len(state.pending_files) == 3
        assert report.startswith("3 files to push")
        assert state.processed == 0

    def test_no_ignore_patterns(self, org_tree):
        state, _ = start_traversal(org_tree, ".org")
        assert len(state.pending_files) == 5

    def test_queue_is_sorted(self, org_tree):
        state, _ = start_traversal(org_tree, ".org", ["archive", ".*"])
        names = [p.relative_to(state.root).as_posix() for p in state.pending_files]
        assert names == ["a.org", "notes/b.org", "notes/deep/c.org"]

    def test_not_a_directory(self, tmp_path):
        with pytest.raises(NotADirectoryError):
            start_traversal(tmp_path / "missing")


class TestIgnorePatterns:
    def test_matches_component(self, tmp_path):
        assert is_ignored(tmp_path / "archive" / "x.org", tmp_path, ["archive"])

    def test_matches_relative_path(self, tmp_path):
        assert is_ignored(tmp_path / "notes" / "deep" / "c.org", tmp_path, ["notes/deep/*"])

    def test_no_match(self, tmp_path):
        assert not is_ignored(tmp_path / "notes" / "b.org", tmp_path, ["archive", "*.txt"])

    def test_find_documents_suffix(self, org_tree):
        assert all(path.suffix == ".org" for path in find_documents(org_tree))


class TestStep:
    def test_decrements_by_one(self, org_tree):
        state, _ = start_traversal(org_tree, ".org", ["archive", ".*"])
        push_file, seen = recording_push()
        depths = []
        while not state.done:
            result = step(state, push_file)
            state = result.state
            depths.append(len(state.pending_files))
        assert depths == [2, 1, 0]
        assert result.done
        assert len(seen) == 3

    def test_does_not_mutate_previous_state(self, org_tree):
        state, _ = start_traversal(org_tree, ".org")
        push_file, _ = recording_push()
        result = step(state, push_file)
        assert len(state.pending_files) == 5
        assert len(result.state.pending_files) == 4

    def test_report_names_depth_and_count(self, org_tree):
        state, _ = start_traversal(org_tree, ".org")
        push_file, _ = recording_push(pushed=2)
        result = step(state, push_file)
        assert result.report.startswith("4 files left; pushed 2 from ")
        assert result.state.pushed == 2
        assert result.push_report.pushed == 2

    def test_empty_queue_signals_done(self, tmp_path):
        state = TraversalState(root=tmp_path, pending_files=())
        result = step(state, lambda path: pytest.fail("nothing to push"))
        assert result.done
        assert result.state is state

    def test_failure_is_recorded_and_traversal_continues(self, tmp_path):
        state = TraversalState(root=tmp_path, pending_files=(tmp_path / "bad.org", tmp_path / "good.org"))

        def push_file(path):
            if path.name == "bad.org":
                raise DuplicateMarkerError(3)
            return PushReport(str(path), pushed=1)

        result = step(state, push_file)
        assert not result.done
        assert "line 3" in result.state.failures[str(tmp_path / "bad.org")]
        assert result.state.open_documents == (tmp_path / "bad.org",)

        result = step(result.state, push_file)
        assert result.done
        assert result.state.pushed == 1
        assert result.state.processed == 2

    def test_untouched_documents_are_not_kept_open(self, tmp_path):
        state = TraversalState(root=tmp_path, pending_files=(tmp_path / "a.org",))
        result = step(state, lambda path: PushReport(str(path)))
        assert result.state.open_documents == ()


class TestRunTraversal:
    def test_pushes_real_files(self, org_tree, fake_client, config):
        state, _ = start_traversal(org_tree, ".org", ["archive", ".*"])
        reports = []
        state = run_traversal(state, make_push_file(fake_client, config), on_report=reports.append)
        assert state.done
        assert state.pushed == 3
        assert len(reports) == 3
        assert "^{1700000000001}" in (org_tree / "a.org").read_text()
        assert "@anki" in (org_tree / "archive" / "old.org").read_text()

    def test_state_file_removed_when_done(self, org_tree, tmp_path):
        state_path = tmp_path / "state.json"
        state, _ = start_traversal(org_tree, ".org", ["archive", ".*"])
        push_file, _ = recording_push()
        run_traversal(state, push_file, state_path=state_path)
        assert not state_path.exists()

    def test_interrupted_run_can_resume(self, org_tree, tmp_path):
        state_path = tmp_path / "state.json"
        state, _ = start_traversal(org_tree, ".org", ["archive", ".*"])
        calls = []

        def flaky_push(path):
            calls.append(path)
            if len(calls) == 2:
                raise KeyboardInterrupt
            return PushReport(str(path), pushed=1)

        with pytest.raises(KeyboardInterrupt):
            run_traversal(state, flaky_push, state_path=state_path)

        resumed = load_state(state_path)
        assert resumed.processed == 1
        assert len(resumed.pending_files) == 2

        push_file, seen = recording_push()
        final = run_traversal(resumed, push_file, state_path=state_path)
        assert final.processed == 3
        assert seen == list(resumed.pending_files)


    def test_bad_replies_do_not_stop_the_run(self, tmp_path, monkeypatch, config):
        for name in ("one.org", "two.org"):
            (tmp_path / name).write_text("- _a_ @anki\n")
        monkeypatch.setattr(
            anki_connect.urllib.request, "urlopen",
            lambda request, timeout=None: io.BytesIO(b"<html>proxy error</html>"),
        )
        state, _ = start_traversal(tmp_path, ".org")
        state = run_traversal(state, make_push_file(AnkiConnectClient(), config))

        assert state.processed == 2
        assert sorted(Path(p).name for p in state.failures) == ["one.org", "two.org"]
        assert "not JSON" in state.failures[str(state.root / "one.org")]
        assert (tmp_path / "two.org").read_text() == "- _a_ @anki\n"


class TestStateFile:
    def test_save_and_load(self, tmp_path):
        state = TraversalState(
            root=tmp_path,
            pending_files=(tmp_path / "a.org", tmp_path / "b.org"),
            processed=3,
            pushed=7,
            open_documents=(tmp_path / "c.org",),
            failures={str(tmp_path / "c.org"): "line 2: boom"},
        )
        path = tmp_path / "state.json"
        save_state(state, path)
        assert load_state(path) == state

    def test_missing_file(self, tmp_path):
        assert load_state(tmp_path / "missing.json") is None

    def test_corrupted_file(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("{not json")
        with pytest.raises(SystemExit):
            load_state(path)

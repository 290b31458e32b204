"""Tests for the interactive rename session."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest
from rich.console import Console

from ftmi.errors import ScanError, StoreError, UnrecordedRenameError
from ftmi.processors.group_selector import GroupSelector
from ftmi.processors.operation_log import OperationLog
from ftmi.processors.prefix_scanner import PrefixScanner
import ftmi.processors.rename_executor as rename_executor
from ftmi.processors.rename_executor import RenameExecutor
from ftmi.session import (
    Decision,
    InteractiveSession,
    SessionState,
    parse_answer,
    parse_directory_line,
)


DUA_LIPA_TRACKS = [
    "[Dua Lipa] Levitating.mp3",
    "[Dua Lipa] Physical.mp3",
    "[Dua Lipa] Don't Start Now.mp3",
]


def make_dir(parent: Path, name: str, files: list[str]) -> Path:
    directory = parent / name
    directory.mkdir()
    for file in files:
        (directory / file).write_text(file)
    return directory


def names(directory: Path) -> list[str]:
    return sorted(path.name for path in directory.iterdir())


def interrupt_second_rename(monkeypatch: pytest.MonkeyPatch) -> None:
    """Raise KeyboardInterrupt when the second file of a group is about to be renamed."""
    calls = []
    original = rename_executor.rename_file

    def interrupting(source: Path, target: Path) -> None:
        calls.append(source)
        if len(calls) == 2:
            raise KeyboardInterrupt
        original(source, target)

    monkeypatch.setattr(rename_executor, "rename_file", interrupting)


@pytest.fixture
def music_dir(tmp_path: Path) -> Path:
    """Directory with three prefixed tracks."""
    return make_dir(tmp_path, "music", DUA_LIPA_TRACKS)


@pytest.fixture
def log(tmp_path: Path):
    """An open operation log."""
    with OperationLog(tmp_path / "renames.db") as operation_log:
        yield operation_log


@pytest.fixture
def make_session(log: OperationLog, console: Console):
    """Factory for sessions with scripted input."""

    def _make(input_source=None, assume_yes: bool = False, operation_log=None) -> InteractiveSession:
        return InteractiveSession(
            scanner=PrefixScanner(),
            selector=GroupSelector(),
            executor=RenameExecutor(),
            log=operation_log or log,
            input_source=input_source,
            console=console,
            assume_yes=assume_yes,
        )

    return _make


class TestParsing:
    """Tests for answer and path parsing."""

    @pytest.mark.parametrize(
        "answer,expected",
        [
            ("", Decision.ACCEPT),
            ("y", Decision.ACCEPT),
            ("YES", Decision.ACCEPT),
            (" n ", Decision.DECLINE),
            ("no", Decision.DECLINE),
            ("s", Decision.SKIP),
            ("skip", Decision.SKIP),
            ("maybe", None),
        ],
    )
    def test_parse_answer(self, answer: str, expected: Decision | None) -> None:
        """Test mapping of confirmation answers."""
        assert parse_answer(answer) is expected

    def test_parse_directory_line_strips_quotes(self, tmp_path: Path) -> None:
        """Test that quoted, padded lines resolve to the directory."""
        assert parse_directory_line(f"  '{tmp_path}'  ") == tmp_path.resolve()
        assert parse_directory_line(f'"{tmp_path}"') == tmp_path.resolve()


class TestRunDirectory:
    """Tests for processing a single directory."""

    def test_accepting_renames_and_records_operation(
        self, music_dir: Path, log: OperationLog, make_session, scripted_input, console: Console
    ) -> None:
        """Test that an empty answer accepts the group and records one operation."""
        session = make_session(scripted_input([""]))

        report = session.run_directory(music_dir)

        assert names(music_dir) == ["Don't Start Now.mp3", "Levitating.mp3", "Physical.mp3"]
        assert report.succeeded_count == 3
        assert report.failed_count == 0
        assert report.groups[0].decision is Decision.ACCEPT

        operations = log.list()
        assert len(operations) == 1
        assert operations[0].prefix == "[Dua Lipa]"
        assert len(operations[0].files) == 3
        assert all(file.succeeded for file in operations[0].files)
        assert report.operation_ids == [operations[0].id]

        output = console.file.getvalue()
        assert "[Dua Lipa] Levitating.mp3" in output
        assert operations[0].id in output

    def test_state_transitions(self, music_dir: Path, make_session, scripted_input) -> None:
        """Test the states visited when a group is accepted."""
        session = make_session(scripted_input(["y"]))

        session.run_directory(music_dir)

        assert session.transitions == [
            SessionState.IDLE,
            SessionState.PRESENTING,
            SessionState.AWAITING_CONFIRMATION,
            SessionState.EXECUTING,
            SessionState.DONE,
        ]
        assert session.state is SessionState.DONE

    def test_declining_leaves_files_untouched(
        self, music_dir: Path, log: OperationLog, make_session, scripted_input
    ) -> None:
        """Test that declining renames nothing and records nothing."""
        session = make_session(scripted_input(["n"]))

        report = session.run_directory(music_dir)

        assert names(music_dir) == sorted(DUA_LIPA_TRACKS)
        assert report.groups[0].decision is Decision.DECLINE
        assert report.operation_ids == []
        assert log.list() == []
        assert SessionState.SKIPPED in session.transitions

    def test_skip_is_reported_separately(self, music_dir: Path, make_session, scripted_input) -> None:
        """Test that skipping is recorded as a skip."""
        report = make_session(scripted_input(["s"])).run_directory(music_dir)

        assert report.groups[0].decision is Decision.SKIP
        assert names(music_dir) == sorted(DUA_LIPA_TRACKS)

    def test_unrecognized_answer_prompts_again(
        self, music_dir: Path, make_session, scripted_input, console: Console
    ) -> None:
        """Test that an unknown answer is asked again."""
        source = scripted_input(["maybe", "yes"])

        report = make_session(source).run_directory(music_dir)

        assert report.groups[0].decision is Decision.ACCEPT
        assert source.items == []
        assert "Please answer" in console.file.getvalue()

    def test_end_of_input_declines(self, music_dir: Path, make_session, scripted_input) -> None:
        """Test that running out of input declines the group."""
        report = make_session(scripted_input([])).run_directory(music_dir)

        assert report.groups[0].decision is Decision.DECLINE
        assert names(music_dir) == sorted(DUA_LIPA_TRACKS)

    def test_tied_groups_are_confirmed_separately(
        self, tmp_path: Path, log: OperationLog, make_session, scripted_input
    ) -> None:
        """Test that each tied group is presented in prefix order with its own answer."""
        directory = make_dir(tmp_path, "mixed", ["[A] one.txt", "[A] two.txt", "[B] three.txt", "[B] four.txt"])

        report = make_session(scripted_input(["y", "n"])).run_directory(directory)

        assert [(g.prefix, g.decision) for g in report.groups] == [("[A]", Decision.ACCEPT), ("[B]", Decision.DECLINE)]
        assert names(directory) == ["[B] four.txt", "[B] three.txt", "one.txt", "two.txt"]
        assert [op.prefix for op in log.list()] == ["[A]"]

    def test_assume_yes_needs_no_input(self, music_dir: Path, make_session) -> None:
        """Test that --yes accepts every group without reading input."""
        report = make_session(input_source=None, assume_yes=True).run_directory(music_dir)

        assert report.succeeded_count == 3

    def test_no_groups(self, tmp_path: Path, make_session, console: Console) -> None:
        """Test a directory without a common prefix."""
        directory = make_dir(tmp_path, "plain", ["a.txt", "b.txt"])

        report = make_session(assume_yes=True).run_directory(directory)

        assert report.groups == []
        assert "No common prefix" in console.file.getvalue()

    def test_missing_directory_raises(self, tmp_path: Path, make_session) -> None:
        """Test that an unreadable directory raises ScanError."""
        with pytest.raises(ScanError):
            make_session(assume_yes=True).run_directory(tmp_path / "missing")

    def test_store_failure_raises_unrecorded_rename(self, music_dir: Path, make_session) -> None:
        """Test that renames stand when the operation cannot be recorded."""
        failing_log = MagicMock(spec=OperationLog)
        failing_log.append.side_effect = StoreError("disk full")
        session = make_session(assume_yes=True, operation_log=failing_log)

        with pytest.raises(UnrecordedRenameError) as exc_info:
            session.run_directory(music_dir)

        assert exc_info.value.outcome.succeeded_count == 3
        assert "undo unavailable" in str(exc_info.value)
        assert names(music_dir) == ["Don't Start Now.mp3", "Levitating.mp3", "Physical.mp3"]


class TestPreviewDirectory:
    """Tests for previewing renames without applying them."""

    def test_preview_presents_without_renaming(
        self, music_dir: Path, log: OperationLog, make_session, console: Console
    ) -> None:
        """Test that every selected group is shown while files and store stay untouched."""
        session = make_session(assume_yes=True)

        groups = session.preview_directory(music_dir)

        assert [g.prefix for g in groups] == ["[Dua Lipa]"]
        assert names(music_dir) == sorted(DUA_LIPA_TRACKS)
        assert log.list() == []
        assert session.transitions == []
        assert "Levitating.mp3" in console.file.getvalue()

    def test_preview_without_groups(self, tmp_path: Path, make_session, console: Console) -> None:
        """Test previewing a directory without a common prefix."""
        directory = make_dir(tmp_path, "plain", ["a.txt", "b.txt"])

        assert make_session().preview_directory(directory) == []
        assert "No common prefix" in console.file.getvalue()


class TestRunContinuous:
    """Tests for continuous mode."""

    def test_processes_directories_in_arrival_order(
        self, tmp_path: Path, log: OperationLog, make_session, scripted_input, console: Console
    ) -> None:
        """Test that each pasted directory is processed and bad ones are skipped."""
        first = make_dir(tmp_path, "first", ["[A] one.txt", "[A] two.txt"])
        second = make_dir(tmp_path, "second", ["[B] one.txt", "[B] two.txt"])
        missing = tmp_path / "missing"
        session = make_session(assume_yes=True)

        reports = session.run_continuous(scripted_input([str(first), str(missing), None, f"'{second}'"]))

        assert [report.directory for report in reports] == [first.resolve(), second.resolve()]
        assert names(first) == ["one.txt", "two.txt"]
        assert names(second) == ["one.txt", "two.txt"]
        assert [op.prefix for op in log.list()] == ["[B]", "[A]"]
        assert "Cannot scan directory" in console.file.getvalue()

    def test_confirmations_share_the_input(self, music_dir: Path, make_session, scripted_input) -> None:
        """Test that answers following a batch are read as confirmations."""
        source = scripted_input([str(music_dir), None, "y"])
        session = make_session(source)

        reports = session.run_continuous()

        assert len(reports) == 1
        assert reports[0].groups[0].decision is Decision.ACCEPT
        assert names(music_dir) == ["Don't Start Now.mp3", "Levitating.mp3", "Physical.mp3"]

    def test_without_input(self, make_session) -> None:
        """Test that continuous mode without any input source returns immediately."""
        assert make_session(assume_yes=True).run_continuous() == []


class TestInterruptedGroup:
    """Tests for an interrupt arriving while a group is being renamed."""

    def test_renamed_files_are_recorded(
        self, music_dir: Path, log: OperationLog, make_session, console: Console, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that files renamed before the interrupt can still be undone."""
        interrupt_second_rename(monkeypatch)
        session = make_session(assume_yes=True)

        with pytest.raises(KeyboardInterrupt):
            session.run_directory(music_dir)

        operations = log.list()
        assert len(operations) == 1
        assert len(operations[0].files) == 1
        renamed = operations[0].files[0]
        assert renamed.new_path.exists()
        assert not renamed.old_path.exists()
        assert len([name for name in names(music_dir) if name.startswith("[Dua Lipa]")]) == 2

        output = console.file.getvalue()
        assert "Interrupted" in output
        assert operations[0].id in output

    def test_interrupt_with_failing_store_raises_unrecorded_rename(
        self, music_dir: Path, make_session, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that renamed files are reported when the interrupted operation cannot be stored."""
        interrupt_second_rename(monkeypatch)
        failing_log = MagicMock(spec=OperationLog)
        failing_log.append.side_effect = StoreError("disk full")
        session = make_session(assume_yes=True, operation_log=failing_log)

        with pytest.raises(UnrecordedRenameError) as exc_info:
            session.run_directory(music_dir)

        assert exc_info.value.outcome.succeeded_count == 1

    def test_interrupt_before_any_rename_records_nothing(
        self, music_dir: Path, log: OperationLog, make_session, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that nothing is stored when no file had moved yet."""
        monkeypatch.setattr(rename_executor, "rename_file", MagicMock(side_effect=KeyboardInterrupt))
        session = make_session(assume_yes=True)

        with pytest.raises(KeyboardInterrupt):
            session.run_directory(music_dir)

        assert log.list() == []
        assert names(music_dir) == sorted(DUA_LIPA_TRACKS)

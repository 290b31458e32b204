"""Unit tests for UndoEngine."""

from pathlib import Path

import pytest

from ftmi.models.operation import FailureReason, RenameOperation
from ftmi.processors.group_selector import GroupSelector
from ftmi.processors.operation_log import OperationLog
from ftmi.processors.prefix_scanner import PrefixScanner
from ftmi.processors.rename_executor import RenameExecutor
from ftmi.processors.undo_engine import UndoEngine


ORIGINAL_NAMES = [
    "[Dua Lipa] Don't Start Now.mp3",
    "[Dua Lipa] Levitating.mp3",
    "[Dua Lipa] Physical.mp3",
    "notes.txt",
]


@pytest.fixture
def music_dir(tmp_path: Path) -> Path:
    """Directory with three prefixed tracks and one unrelated file."""
    directory = tmp_path / "music"
    directory.mkdir()
    for name in ORIGINAL_NAMES:
        (directory / name).write_text(name)
    return directory


@pytest.fixture
def log(tmp_path: Path):
    """An open operation log."""
    with OperationLog(tmp_path / "renames.db") as operation_log:
        yield operation_log


@pytest.fixture
def operation(music_dir: Path, log: OperationLog) -> RenameOperation:
    """Strip the prefix from the tracks and record the operation."""
    (group,) = GroupSelector().select(PrefixScanner().scan(music_dir))
    recorded = RenameExecutor().execute(group).to_operation(now=1_700_000_000)
    log.append(recorded)
    return recorded


def names(directory: Path) -> list[str]:
    return sorted(path.name for path in directory.iterdir())


class TestUndoEngine:
    """Tests for UndoEngine."""

    def test_rename_then_undo_restores_original_names(
        self, music_dir: Path, log: OperationLog, operation: RenameOperation
    ) -> None:
        """Test that undoing a rename restores exactly the original filenames."""
        assert names(music_dir) == sorted(["Don't Start Now.mp3", "Levitating.mp3", "Physical.mp3", "notes.txt"])

        outcome = UndoEngine(log).execute(log.get(operation.id), now=1_700_000_100)

        assert outcome.summary() == "3 succeeded, 0 failed"
        assert outcome.operation_id == operation.id
        assert names(music_dir) == sorted(ORIGINAL_NAMES)
        assert (music_dir / "[Dua Lipa] Levitating.mp3").read_text() == "[Dua Lipa] Levitating.mp3"

    def test_undo_marks_operation_undone(self, log: OperationLog, operation: RenameOperation) -> None:
        """Test that the undo time is recorded and the operation is kept."""
        outcome = UndoEngine(log).execute(operation, now=1_700_000_100)

        assert outcome.undone_at == 1_700_000_100
        assert log.get(operation.id).undone_at == 1_700_000_100

    def test_preview_is_reverse_mapping_in_reverse_order(self, log: OperationLog, operation: RenameOperation) -> None:
        """Test that the preview maps new names back to old ones, last rename first."""
        preview = UndoEngine(log).preview(operation)

        assert [(current.name, restored.name) for current, restored in preview] == [
            ("Physical.mp3", "[Dua Lipa] Physical.mp3"),
            ("Levitating.mp3", "[Dua Lipa] Levitating.mp3"),
            ("Don't Start Now.mp3", "[Dua Lipa] Don't Start Now.mp3"),
        ]

    def test_second_undo_reports_not_found(
        self, music_dir: Path, log: OperationLog, operation: RenameOperation
    ) -> None:
        """Test that undoing twice changes nothing and keeps the first undo time."""
        engine = UndoEngine(log)
        engine.execute(log.get(operation.id), now=1_700_000_100)

        outcome = engine.execute(log.get(operation.id), now=1_700_000_200)

        assert outcome.succeeded_count == 0
        assert [f.reason for f in outcome.failed] == [FailureReason.NOT_FOUND] * 3
        assert outcome.undone_at == 1_700_000_100
        assert log.get(operation.id).undone_at == 1_700_000_100
        assert names(music_dir) == sorted(ORIGINAL_NAMES)

    def test_conflicting_file_is_left_alone(
        self, music_dir: Path, log: OperationLog, operation: RenameOperation
    ) -> None:
        """Test that a file recreated under an old name blocks only its own restore."""
        (music_dir / "[Dua Lipa] Physical.mp3").write_text("new recording")

        outcome = UndoEngine(log).execute(operation)

        assert outcome.summary() == "2 succeeded, 1 failed"
        assert outcome.failed[0].reason is FailureReason.TARGET_EXISTS
        assert (music_dir / "[Dua Lipa] Physical.mp3").read_text() == "new recording"
        assert (music_dir / "Physical.mp3").exists()
        assert log.get(operation.id).is_undone

    def test_nothing_restored_leaves_operation_active(
        self, music_dir: Path, log: OperationLog, operation: RenameOperation
    ) -> None:
        """Test that an undo restoring no file does not mark the operation undone."""
        for name in ["Don't Start Now.mp3", "Levitating.mp3", "Physical.mp3"]:
            (music_dir / name).unlink()

        outcome = UndoEngine(log).execute(operation)

        assert outcome.failed_count == 3
        assert outcome.undone_at is None
        assert not log.get(operation.id).is_undone

"""Execution of confirmed prefix-stripping renames."""

import errno
import logging
from pathlib import Path

from ftmi.errors import RenameError, RenameInterrupted
from ftmi.models.operation import FailureReason, OperationFile, RenameOutcome
from ftmi.models.prefix import PrefixedPath


logger = logging.getLogger(__name__)


def _reason_for(error: OSError) -> FailureReason:
    if isinstance(error, FileNotFoundError):
        return FailureReason.NOT_FOUND
    if isinstance(error, PermissionError):
        return FailureReason.PERMISSION_DENIED
    if isinstance(error, (FileExistsError, IsADirectoryError)) or error.errno == errno.ENOTEMPTY:
        return FailureReason.TARGET_EXISTS
    return FailureReason.OS_ERROR


def rename_file(source: Path, target: Path) -> None:
    """Rename `source` to `target` without ever replacing an existing file.

    Raises:
        RenameError: If `source` is missing, `target` exists, or the OS refuses the rename.
    """
    if not source.exists():
        raise RenameError(FailureReason.NOT_FOUND, source)
    if target.exists():
        raise RenameError(FailureReason.TARGET_EXISTS, target)
    try:
        source.rename(target)
    except OSError as e:
        raise RenameError(_reason_for(e), source, e.strerror or str(e)) from e


def _was_renamed(source: Path, target: Path) -> bool:
    return target.exists() and not source.exists()


class RenameExecutor:
    """Renames every file of a confirmed group, recording a result per file."""

    def plan(self, group: PrefixedPath) -> list[tuple[Path, Path]]:
        """Return the (old, new) pairs that `execute` would attempt, in order."""
        return group.rename_targets()

    def execute(self, group: PrefixedPath) -> RenameOutcome:
        """Strip the group's prefix from each of its files.

        A failing file is recorded and the remaining files are still attempted.

        Args:
            group: The confirmed group.

        Returns:
            Per-file outcomes for the group.

        Raises:
            RenameInterrupted: If interrupted partway. It carries the files renamed so far.
        """
        files: list[OperationFile] = []
        pending: tuple[Path, Path] | None = None
        try:
            for old_path, new_path in self.plan(group):
                pending = (old_path, new_path)
                try:
                    rename_file(old_path, new_path)
                except RenameError as e:
                    logger.warning("Could not rename %s: %s", old_path, e)
                    files.append(OperationFile.failure(old_path, new_path, e.reason, e.detail))
                else:
                    logger.debug("Renamed %s -> %s", old_path, new_path)
                    files.append(OperationFile(old_path=old_path, new_path=new_path))
                pending = None
        except KeyboardInterrupt as e:
            # The file being renamed when the interrupt arrived may already have moved
            if pending is not None and _was_renamed(*pending) and all(f.old_path != pending[0] for f in files):
                files.append(OperationFile(old_path=pending[0], new_path=pending[1]))
            outcome = self._outcome(group, files)
            logger.warning("Interrupted renaming group '%s': %s", group.prefix, outcome.summary())
            raise RenameInterrupted(outcome) from e

        outcome = self._outcome(group, files)
        logger.info("Renamed group '%s' in %s: %s", group.prefix, outcome.directory, outcome.summary())
        return outcome

    def _outcome(self, group: PrefixedPath, files: list[OperationFile]) -> RenameOutcome:
        directory = group.directory if group.directory is not None else Path(".")
        return RenameOutcome(directory=directory, prefix=group.prefix, files=files)

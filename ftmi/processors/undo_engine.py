"""Reversal of recorded rename operations."""

import logging
import time
from pathlib import Path

from ftmi.errors import RenameError
from ftmi.models.operation import OperationFile, RenameOperation, UndoOutcome
from ftmi.processors.operation_log import OperationLog
from ftmi.processors.rename_executor import rename_file


logger = logging.getLogger(__name__)


class UndoEngine:
    """Moves the files of a recorded operation back to their original names."""

    def __init__(self, log: OperationLog) -> None:
        self.log = log

    def preview(self, operation: RenameOperation) -> list[tuple[Path, Path]]:
        """Return the (current, restored) path pairs in the order they would be undone."""
        return [(file.new_path, file.old_path) for file in reversed(operation.files) if file.succeeded]

    def execute(self, operation: RenameOperation, now: float | None = None) -> UndoOutcome:
        """Reverse an operation, file by file, in reverse order.

        Files that cannot be restored are reported and skipped. The operation is
        marked undone once at least one file has been restored. Undoing an operation
        a second time restores nothing and reports every file as not found.

        Args:
            operation: The operation to reverse.
            now: Unix time to record as the undo time. Defaults to the current time.

        Returns:
            Per-file outcomes, with each entry keeping the operation's own old/new paths.

        Raises:
            StoreError: If the undo time cannot be written to the store.
        """
        files: list[OperationFile] = []
        for current, restored in self.preview(operation):
            try:
                rename_file(current, restored)
            except RenameError as e:
                logger.warning("Could not restore %s: %s", current, e)
                files.append(OperationFile.failure(restored, current, e.reason, e.detail))
                continue
            logger.debug("Restored %s -> %s", current, restored)
            files.append(OperationFile(old_path=restored, new_path=current))

        outcome = UndoOutcome(operation_id=operation.id, files=files, undone_at=operation.undone_at)
        if outcome.succeeded_count and not operation.is_undone:
            undone_at = int(time.time() if now is None else now)
            self.log.mark_undone(operation.id, undone_at)
            outcome.undone_at = undone_at

        logger.info("Undid operation %s: %s", operation.id, outcome.summary())
        return outcome

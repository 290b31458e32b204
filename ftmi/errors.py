"""Exception hierarchy for prefix detection, renaming and the operation store."""

from pathlib import Path
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from ftmi.models.operation import FailureReason, RenameOutcome


class FtmiError(Exception):
    """Base class for all errors raised by ftmi."""


class ScanError(FtmiError):
    """A directory could not be listed."""

    def __init__(self, directory: Path, reason: str) -> None:
        self.directory = directory
        self.reason = reason
        super().__init__(f"Cannot scan directory {directory}: {reason}")


class FilterError(FtmiError):
    """A filter or match pattern failed to compile."""

    def __init__(self, pattern: str, reason: str) -> None:
        self.pattern = pattern
        self.reason = reason
        super().__init__(f"Invalid pattern '{pattern}': {reason}")


class RenameError(FtmiError):
    """A single file could not be renamed.

    Raised per file and recovered by the caller, which records the failure
    and carries on with the remaining files.
    """

    def __init__(self, reason: "FailureReason", path: Path, detail: str = "") -> None:
        self.reason = reason
        self.path = path
        self.detail = detail
        message = f"{reason.label}: {path}"
        if detail:
            message += f" ({detail})"
        super().__init__(message)


class StoreError(FtmiError):
    """The operation store is unreachable or corrupt."""


class UnrecordedRenameError(StoreError):
    """Files were renamed but the operation could not be written to the store.

    The renames are not rolled back, so undo is unavailable for them.
    """

    def __init__(self, outcome: "RenameOutcome", cause: StoreError) -> None:
        self.outcome = outcome
        self.cause = cause
        super().__init__(
            f"Renamed {outcome.succeeded_count} file(s) in {outcome.directory} but could not record the operation "
            f"(undo unavailable): {cause}"
        )


class UndoError(FtmiError):
    """An operation could not be reversed."""


class OperationNotFound(UndoError):
    """No operation matches the requested id, or the store is empty."""

    def __init__(self, operation_id: str | None = None) -> None:
        self.operation_id = operation_id
        if operation_id is None:
            super().__init__("No operations found in the store.")
        else:
            super().__init__(f"Operation ID '{operation_id}' not found.")


class RenameInterrupted(KeyboardInterrupt):
    """The user interrupted a group partway through its renames.

    `outcome` holds the files handled before the interrupt, so they can still be recorded.
    """

    def __init__(self, outcome: "RenameOutcome") -> None:
        self.outcome = outcome
        super().__init__(f"Interrupted after renaming {outcome.succeeded_count} file(s) in {outcome.directory}")

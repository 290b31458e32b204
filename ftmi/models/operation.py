"""Rename operation data models."""

import time
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, model_validator


class FileStatus(str, Enum):
    """Outcome of renaming a single file."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"


class FailureReason(str, Enum):
    """Why a single file could not be renamed."""

    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    TARGET_EXISTS = "target_exists"
    OS_ERROR = "os_error"

    @property
    def label(self) -> str:
        return {
            FailureReason.NOT_FOUND: "NotFound",
            FailureReason.PERMISSION_DENIED: "PermissionDenied",
            FailureReason.TARGET_EXISTS: "TargetExists",
            FailureReason.OS_ERROR: "OsError",
        }[self]


class OperationFile(BaseModel):
    """A single (old_path, new_path, status) entry of an operation."""

    old_path: Path
    new_path: Path
    status: FileStatus = FileStatus.SUCCEEDED
    reason: FailureReason | None = None
    detail: str = ""

    @model_validator(mode="after")
    def _reason_matches_status(self) -> "OperationFile":
        if self.status is FileStatus.FAILED and self.reason is None:
            raise ValueError("a failed file must carry a failure reason")
        if self.status is FileStatus.SUCCEEDED and self.reason is not None:
            raise ValueError("a succeeded file cannot carry a failure reason")
        return self

    @property
    def succeeded(self) -> bool:
        return self.status is FileStatus.SUCCEEDED

    @classmethod
    def failure(cls, old_path: Path, new_path: Path, reason: FailureReason, detail: str = "") -> "OperationFile":
        return cls(old_path=old_path, new_path=new_path, status=FileStatus.FAILED, reason=reason, detail=detail)

    def __str__(self) -> str:
        if self.succeeded:
            return f"{self.old_path.name} -> {self.new_path.name}"
        return f"{self.old_path.name} -> {self.new_path.name}: {self.reason.label}"


class RenameOperation(BaseModel):
    """A persisted, reversible batch of renames for one prefix in one directory."""

    id: str
    timestamp: int = Field(description="Unix seconds at which the operation was recorded")
    directory: Path
    prefix: str
    files: list[OperationFile] = Field(min_length=1)
    undone_at: int | None = Field(default=None, description="Unix seconds at which the operation was undone")

    @property
    def is_undone(self) -> bool:
        return self.undone_at is not None

    @property
    def recorded_at(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp, tz=timezone.utc)

    def __str__(self) -> str:
        return f"RenameOperation('{self.id}', prefix='{self.prefix}', files={len(self.files)})"


class BatchOutcome(BaseModel):
    """Per-file results of renaming (or restoring) a batch of files."""

    files: list[OperationFile] = Field(default_factory=list)

    @property
    def succeeded(self) -> list[OperationFile]:
        return [f for f in self.files if f.succeeded]

    @property
    def failed(self) -> list[OperationFile]:
        return [f for f in self.files if not f.succeeded]

    @property
    def succeeded_count(self) -> int:
        return len(self.succeeded)

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    def summary(self) -> str:
        """Return the `k succeeded, n-k failed` line."""
        return f"{self.succeeded_count} succeeded, {self.failed_count} failed"


class RenameOutcome(BatchOutcome):
    """Results of renaming one confirmed group."""

    directory: Path
    prefix: str

    def to_operation(self, now: float | None = None) -> RenameOperation | None:
        """Build the operation to persist from the files that were renamed.

        Returns None when nothing was renamed, so empty operations are never stored.
        """
        succeeded = self.succeeded
        if not succeeded:
            return None
        now = time.time() if now is None else now
        return RenameOperation(
            id=generate_operation_id(now),
            timestamp=int(now),
            directory=self.directory,
            prefix=self.prefix,
            files=succeeded,
        )


class UndoOutcome(BatchOutcome):
    """Results of reversing an operation.

    Each entry keeps the operation's own old/new paths; a succeeded entry means
    `new_path` was moved back to `old_path`.
    """

    operation_id: str
    undone_at: int | None = None


_last_operation_ns = 0


def generate_operation_id(now: float | None = None) -> str:
    """Return a unique, time-derived operation id.

    Ids are zero-padded nanoseconds, so sorting them lexically sorts them in time
    order. Ids issued by one process are strictly increasing.
    """
    global _last_operation_ns
    ns = time.time_ns() if now is None else int(now * 1_000_000_000)
    ns = max(ns, _last_operation_ns + 1)
    _last_operation_ns = ns
    return f"op_{ns:020d}"

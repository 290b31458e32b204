"""Interactive confirmation of prefix groups, one directory at a time."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ftmi.config import DEBOUNCE_SECONDS
from ftmi.errors import RenameInterrupted, ScanError, StoreError, UnrecordedRenameError
from ftmi.input_source import DebouncedBatcher, InputEvent, InputSource
from ftmi.models.operation import RenameOutcome
from ftmi.models.prefix import PrefixedPath
from ftmi.processors.group_selector import GroupSelector
from ftmi.processors.operation_log import OperationLog
from ftmi.processors.prefix_scanner import PrefixScanner
from ftmi.processors.rename_executor import RenameExecutor


logger = logging.getLogger(__name__)

ACCEPT_ANSWERS = {"", "y", "yes"}
DECLINE_ANSWERS = {"n", "no"}
SKIP_ANSWERS = {"s", "skip"}


class SessionState(Enum):
    IDLE = "idle"
    PRESENTING = "presenting"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    EXECUTING = "executing"
    SKIPPED = "skipped"
    DONE = "done"


class Decision(Enum):
    ACCEPT = "accept"
    DECLINE = "decline"
    SKIP = "skip"


@dataclass
class GroupReport:
    """What happened to one presented group."""

    prefix: str
    decision: Decision
    outcome: RenameOutcome | None = None
    operation_id: str | None = None


@dataclass
class DirectoryReport:
    """Aggregate result of processing one directory."""

    directory: Path
    groups: list[GroupReport] = field(default_factory=list)

    @property
    def succeeded_count(self) -> int:
        return sum(g.outcome.succeeded_count for g in self.groups if g.outcome is not None)

    @property
    def failed_count(self) -> int:
        return sum(g.outcome.failed_count for g in self.groups if g.outcome is not None)

    @property
    def operation_ids(self) -> list[str]:
        return [g.operation_id for g in self.groups if g.operation_id is not None]


def parse_answer(answer: str) -> Decision | None:
    """Map a confirmation answer to a decision, or None if it is not recognized."""
    answer = answer.strip().lower()
    if answer in ACCEPT_ANSWERS:
        return Decision.ACCEPT
    if answer in DECLINE_ANSWERS:
        return Decision.DECLINE
    if answer in SKIP_ANSWERS:
        return Decision.SKIP
    return None


def parse_directory_line(line: str) -> Path:
    """Turn a pasted line into an absolute directory path.

    Surrounding whitespace and quotes (as added by drag-and-drop in some terminals) are removed.
    """
    text = line.strip().strip("'\"")
    return Path(text).expanduser().resolve()


class InteractiveSession:
    """Presents each selected group and renames the ones the user accepts.

    For every directory the session moves through
    IDLE -> PRESENTING -> AWAITING_CONFIRMATION -> EXECUTING | SKIPPED -> ... -> DONE.
    Every state entered is appended to `transitions`.
    """

    def __init__(
        self,
        scanner: PrefixScanner,
        selector: GroupSelector,
        executor: RenameExecutor,
        log: OperationLog,
        input_source: InputSource | None,
        console: Console,
        assume_yes: bool = False,
        debounce_seconds: float = DEBOUNCE_SECONDS,
    ) -> None:
        self.scanner = scanner
        self.selector = selector
        self.executor = executor
        self.log = log
        self.input_source = input_source
        self.console = console
        self.assume_yes = assume_yes
        self.debounce_seconds = debounce_seconds
        self.state = SessionState.IDLE
        self.transitions: list[SessionState] = []

    def _enter(self, state: SessionState) -> None:
        self.state = state
        self.transitions.append(state)

    def run_directory(self, directory: Path) -> DirectoryReport:
        """Scan a directory and confirm each selected group in prefix order.

        Args:
            directory: Directory to process.

        Returns:
            Decisions and rename outcomes for every presented group.

        Raises:
            ScanError: If the directory cannot be listed.
            UnrecordedRenameError: If files were renamed but the operation could not be stored.
        """
        self._enter(SessionState.IDLE)
        report = DirectoryReport(directory=directory)

        groups = self.selector.select(self.scanner.scan(directory))
        if not groups:
            self.console.print(
                f"[yellow]No common prefix found in[/yellow] [bold cyan]{escape(str(directory))}[/bold cyan]."
            )
            self._enter(SessionState.DONE)
            return report

        for group in groups:
            report.groups.append(self._process_group(group))

        self._enter(SessionState.DONE)
        self._print_report(report)
        return report

    def preview_directory(self, directory: Path) -> list[PrefixedPath]:
        """Show the renames each selected group would make, without asking or renaming.

        Raises:
            ScanError: If the directory cannot be listed.
        """
        groups = self.selector.select(self.scanner.scan(directory))
        if not groups:
            self.console.print(
                f"[yellow]No common prefix found in[/yellow] [bold cyan]{escape(str(directory))}[/bold cyan]."
            )
        for group in groups:
            self._present(group, self.executor.plan(group))
        return groups

    def _process_group(self, group: PrefixedPath) -> GroupReport:
        self._enter(SessionState.PRESENTING)
        plan = self.executor.plan(group)
        self._present(group, plan)
        if not plan:
            self.console.print("[yellow]Nothing to rename for this prefix.[/yellow]")
            self._enter(SessionState.SKIPPED)
            return GroupReport(prefix=group.prefix, decision=Decision.SKIP)

        self._enter(SessionState.AWAITING_CONFIRMATION)
        decision = self._confirm(len(plan))
        if decision is not Decision.ACCEPT:
            label = "Skipped" if decision is Decision.SKIP else "Declined"
            self.console.print(f"[dim]{label} prefix {escape(group.prefix)}.[/dim]")
            self._enter(SessionState.SKIPPED)
            return GroupReport(prefix=group.prefix, decision=decision)

        self._enter(SessionState.EXECUTING)
        try:
            outcome = self.executor.execute(group)
        except RenameInterrupted as e:
            operation_id = self._record(e.outcome)
            if operation_id is not None:
                self.console.print(
                    f"\n[yellow]Interrupted.[/yellow] {e.outcome.succeeded_count} renamed file(s) recorded as "
                    f"[bold cyan]{operation_id}[/bold cyan]."
                )
            raise
        for failed in outcome.failed:
            self.console.print(f"  [red]Failed[/red] {escape(str(failed))}")

        operation_id = self._record(outcome)
        return GroupReport(prefix=group.prefix, decision=decision, outcome=outcome, operation_id=operation_id)

    def _record(self, outcome: RenameOutcome) -> str | None:
        """Store the renamed files of an outcome and return the operation id, if any.

        Raises:
            UnrecordedRenameError: If files were renamed but the store rejected the operation.
        """
        operation = outcome.to_operation()
        if operation is None:
            return None
        try:
            self.log.append(operation)
        except StoreError as e:
            raise UnrecordedRenameError(outcome, e) from e
        return operation.id

    def _present(self, group: PrefixedPath, plan: list[tuple[Path, Path]]) -> None:
        self.console.print()
        self.console.print(
            f"Found prefix [bold cyan]{escape(group.prefix)}[/bold cyan] in {group.occurrences} file(s):"
        )
        table = Table(show_header=True, header_style="bold")
        table.add_column("Original", style="cyan")
        table.add_column("New Name", style="green")
        for old_path, new_path in plan:
            table.add_row(escape(old_path.name), escape(new_path.name))
        self.console.print(table)

    def _confirm(self, count: int) -> Decision:
        if self.assume_yes:
            return Decision.ACCEPT
        if self.input_source is None:
            return Decision.DECLINE

        while True:
            self.console.print(f"Rename {count} file(s)? {escape('[Y/n/s]')} ", end="")
            answer = self.input_source.next_line()
            if answer is InputEvent.EOF:
                self.console.print()
                return Decision.DECLINE
            if answer is InputEvent.TIMEOUT:
                continue
            decision = parse_answer(answer)
            if decision is not None:
                return decision
            self.console.print("[yellow]Please answer y (yes), n (no) or s (skip).[/yellow]")

    def _print_report(self, report: DirectoryReport) -> None:
        self.console.print(
            f"[bold]{escape(str(report.directory))}:[/bold] "
            f"[green]{report.succeeded_count} succeeded[/green], [red]{report.failed_count} failed[/red]"
        )
        for operation_id in report.operation_ids:
            self.console.print(
                f"  Operation ID: [bold cyan]{operation_id}[/bold cyan] (undo with --undo {operation_id})"
            )

    def run_continuous(self, directory_source: InputSource | None = None) -> list[DirectoryReport]:
        """Process directories pasted into the input until it ends.

        Lines arriving within the debounce window form one batch. Each directory of a
        batch is processed to completion, in arrival order, before the next one starts.
        A directory that cannot be scanned is reported and skipped.

        Args:
            directory_source: Where directory lines come from. Defaults to the
                confirmation input.

        Returns:
            One report per directory that was scanned.
        """
        source = directory_source or self.input_source
        if source is None:
            return []

        batcher = DebouncedBatcher(source, self.debounce_seconds)
        reports: list[DirectoryReport] = []
        self.console.print("[cyan]Paste directory paths (one per line). End input to finish.[/cyan]")
        while True:
            batch = batcher.next_batch()
            if batch is None:
                break
            logger.debug("Processing batch of %d director(ies)", len(batch))
            for line in batch:
                directory = parse_directory_line(line)
                try:
                    reports.append(self.run_directory(directory))
                except ScanError as e:
                    self.console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
                    self._enter(SessionState.DONE)
        return reports

"""CLI entrypoints."""

import logging
import sys
from pathlib import Path
from typing import IO

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from ftmi.config import (
    DEFAULT_DETECT_DELIMITERS,
    DEFAULT_LIST_LIMIT,
    DEFAULT_LONGEST_MATCH_PATTERN,
    DEFAULT_MIN_OCCURRENCES,
    DEFAULT_SPECIFIC_PREFIXES,
    STORE_PATH_ENVVAR,
    default_store_path,
)
from ftmi.errors import FtmiError, ScanError, UnrecordedRenameError
from ftmi.input_source import InputSource, StreamInputSource, open_terminal
from ftmi.models.operation import RenameOperation
from ftmi.models.prefix import (
    DelimiterOnly,
    DetectAll,
    LongestMatch,
    PrefixOptions,
    SpecificPrefixes,
)
from ftmi.processors.group_selector import GroupSelector
from ftmi.processors.operation_log import OperationLog
from ftmi.processors.prefix_scanner import PrefixScanner
from ftmi.processors.rename_executor import RenameExecutor
from ftmi.processors.undo_engine import UndoEngine
from ftmi.session import InteractiveSession, parse_directory_line


console = Console()

# Value of --undo when given without an operation id
MOST_RECENT = "latest"

# Number of renamed files shown per operation by --list
LIST_PREVIEW_FILES = 3


@click.group(context_settings=dict(show_default=True))
@click.option("-v", "--verbose", is_flag=True, default=False, help="Show diagnostic logging.")
def cli(verbose: bool) -> None:
    """ftmi - Find shared filename prefixes and strip them, reversibly."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _read_directories(stream) -> list[Path]:
    """Read one directory per non-blank line."""
    return [parse_directory_line(line) for line in stream if line.strip()]


def _stdin_is_piped() -> bool:
    return not sys.stdin.isatty()


def _print_operation_files(operation: RenameOperation, limit: int | None = None) -> None:
    files = operation.files if limit is None else operation.files[:limit]
    for file in files:
        console.print(f"    {escape(file.old_path.name)} -> {escape(file.new_path.name)}")
    if limit is not None and len(operation.files) > limit:
        console.print(f"    [dim]... and {len(operation.files) - limit} more[/dim]")


def _list_operations(log: OperationLog, limit: int) -> None:
    operations = log.list(limit)
    if not operations:
        console.print("[yellow]No rename operations recorded.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Operation ID", style="cyan")
    table.add_column("Recorded (UTC)")
    table.add_column("Directory")
    table.add_column("Prefix", style="magenta")
    table.add_column("Files", justify="right")
    table.add_column("Status")
    for operation in operations:
        if operation.is_undone:
            status = f"[yellow]undone {operation.undone_at}[/yellow]"
        else:
            status = "[green]active[/green]"
        table.add_row(
            operation.id,
            operation.recorded_at.strftime("%Y-%m-%d %H:%M:%S"),
            escape(str(operation.directory)),
            escape(operation.prefix),
            str(len(operation.files)),
            status,
        )
    console.print(table)

    for operation in operations:
        console.print(f"  [cyan]{operation.id}[/cyan]")
        _print_operation_files(operation, limit=LIST_PREVIEW_FILES)


def _undo(log: OperationLog, undo_id: str, yes: bool) -> None:
    operation = log.most_recent() if undo_id == MOST_RECENT else log.get(undo_id)
    engine = UndoEngine(log)

    console.print(
        f"Undoing operation [bold cyan]{operation.id}[/bold cyan]: prefix "
        f"[magenta]{escape(operation.prefix)}[/magenta] in {escape(str(operation.directory))} "
        f"({len(operation.files)} file(s), recorded {operation.recorded_at:%Y-%m-%d %H:%M:%S} UTC)"
    )
    if operation.is_undone:
        console.print("[yellow]This operation has already been undone.[/yellow]")

    table = Table(show_header=True, header_style="bold")
    table.add_column("Current", style="cyan")
    table.add_column("Restored", style="green")
    for current, restored in engine.preview(operation):
        table.add_row(escape(current.name), escape(restored.name))
    console.print(table)

    if not yes and not click.confirm("Undo these renames?", default=False):
        console.print("[yellow]Aborted. No files were renamed.[/yellow]")
        return

    outcome = engine.execute(operation)
    for failed in outcome.failed:
        console.print(f"  [red]Failed[/red] {escape(failed.new_path.name)}: {failed.reason.label}")
    console.print(f"[bold green]Undo complete.[/bold green] {outcome.summary()}")


@cli.command("rename")
@click.argument("directories", type=click.Path(path_type=Path), nargs=-1)
@click.option("-r", "--regex", type=str, default=None, help="Only offer prefixes matching this regex.")
@click.option("--no-filter", is_flag=True, default=False, help="Offer every detected prefix, ignoring the regex.")
@click.option(
    "-c",
    "--continuous",
    is_flag=True,
    default=False,
    help="Keep reading directory paths (one per line) until input ends.",
)
@click.option(
    "-u",
    "--undo",
    "undo_id",
    is_flag=False,
    flag_value=MOST_RECENT,
    default=None,
    help="Undo an operation by id, or the most recent one if no id is given.",
)
@click.option("-l", "--list", "list_operations", is_flag=True, default=False, help="List recent operations.")
@click.option("--limit", type=click.IntRange(min=1), default=DEFAULT_LIST_LIMIT, help="Operations shown by --list.")
@click.option(
    "--min",
    "min_occurrences",
    type=click.IntRange(min=1),
    default=DEFAULT_MIN_OCCURRENCES,
    help="Minimum number of files sharing a prefix.",
)
@click.option(
    "-y",
    "--yes",
    is_flag=True,
    default=False,
    help="Apply renames (or the undo) without asking for confirmation.",
)
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="Show the renames that would be offered, without renaming or recording anything.",
)
@click.option(
    "--db-path",
    type=click.Path(path_type=Path, dir_okay=False),
    envvar=STORE_PATH_ENVVAR,
    default=default_store_path,
    help="Location of the operation store.",
)
def rename(
    directories: tuple[Path, ...],
    regex: str | None,
    no_filter: bool,
    continuous: bool,
    undo_id: str | None,
    list_operations: bool,
    limit: int,
    min_occurrences: int,
    yes: bool,
    dry_run: bool,
    db_path: Path,
) -> None:
    """Strip the most common filename prefix in each directory.

    Directories can be given as arguments or piped in, one per line. Every rename is
    recorded and can be reversed with --undo.

    Examples:

        ftmi rename ~/Music/Dua\\ Lipa

        ftmi rename -r '\\(.*\\)' ~/Documents/drafts

        ls -d ~/Music/*/ | ftmi rename

        ftmi rename --dry-run ~/Music/*/

        ftmi rename --undo
    """
    options = PrefixOptions(min_occurrences=min_occurrences)
    log = OperationLog(db_path)
    try:
        # Patterns are validated before anything touches the filesystem
        selector = GroupSelector(options, pattern=regex, no_filter=no_filter)

        if dry_run:
            if list_operations or undo_id is not None:
                console.print("[bold red]Error:[/bold red] --dry-run only applies to renames.")
                raise SystemExit(1)
            _preview_renames(selector, log, options, directories)
            return

        log.open()

        if list_operations:
            _list_operations(log, limit)
            return
        if undo_id is not None:
            _undo(log, undo_id, yes)
            return

        _run_renames(selector, log, options, directories, continuous, yes)
    except UnrecordedRenameError as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        for file in e.outcome.succeeded:
            console.print(f"  [red]Not recorded:[/red] {escape(str(file.old_path))} -> {escape(str(file.new_path))}")
        raise SystemExit(2) from e
    except FtmiError as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise SystemExit(1) from e
    except KeyboardInterrupt as e:
        console.print("\n[yellow]Interrupted.[/yellow]")
        raise SystemExit(130) from e
    finally:
        log.close()


def _preview_renames(
    selector: GroupSelector,
    log: OperationLog,
    options: PrefixOptions,
    directories: tuple[Path, ...],
) -> None:
    queued = [path.expanduser().resolve() for path in directories]
    if not queued and _stdin_is_piped():
        queued = _read_directories(sys.stdin)
    if not queued:
        console.print("[bold red]Error:[/bold red] No directories given.")
        raise SystemExit(1)

    session = InteractiveSession(
        scanner=PrefixScanner(options),
        selector=selector,
        executor=RenameExecutor(),
        log=log,
        input_source=None,
        console=console,
    )
    for directory in queued:
        session.preview_directory(directory)
    console.print("\n[dim]Dry run. No files were renamed.[/dim]")


def _run_renames(
    selector: GroupSelector,
    log: OperationLog,
    options: PrefixOptions,
    directories: tuple[Path, ...],
    continuous: bool,
    yes: bool,
) -> None:
    stdin_source: InputSource | None = None
    confirmations: InputSource | None = None
    terminal: IO[bytes] | None = None
    queued = [path.expanduser().resolve() for path in directories]

    if _stdin_is_piped() and (continuous or not queued):
        # Directories come from stdin, so confirmations must come from the terminal
        if not continuous:
            queued = _read_directories(sys.stdin)
        else:
            stdin_source = StreamInputSource(sys.stdin)
        if not yes:
            terminal = open_terminal()
            if terminal is None:
                console.print("[bold red]Error:[/bold red] No terminal available for confirmations; use --yes.")
                raise SystemExit(1)
            confirmations = StreamInputSource(terminal)
    elif not yes or continuous:
        stdin_source = StreamInputSource(sys.stdin)
        confirmations = stdin_source

    try:
        if not queued and not continuous:
            console.print("[bold red]Error:[/bold red] No directories given.")
            raise SystemExit(1)

        session = InteractiveSession(
            scanner=PrefixScanner(options),
            selector=selector,
            executor=RenameExecutor(),
            log=log,
            input_source=confirmations,
            console=console,
            assume_yes=yes,
        )
        for directory in queued:
            if continuous:
                try:
                    session.run_directory(directory)
                except ScanError as e:
                    console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
            else:
                session.run_directory(directory)
        if continuous:
            session.run_continuous(stdin_source)
    finally:
        if terminal is not None:
            terminal.close()


def _parse_delimiter(ctx: click.Context, param: click.Parameter, value: tuple[str, ...]) -> list[tuple[str, str]]:
    pairs = []
    for pair in value:
        if len(pair) != 2:
            raise click.BadParameter(f"'{pair}' must be exactly two characters, e.g. '[]'")
        pairs.append((pair[0], pair[1]))
    return pairs


@cli.command("detect")
@click.argument("directories", type=click.Path(path_type=Path), nargs=-1)
@click.option(
    "--mode",
    type=click.Choice(["all", "delimited", "specific", "longest"]),
    default="all",
    help="How prefixes are detected.",
)
@click.option(
    "--delimiter",
    "delimiters",
    multiple=True,
    callback=_parse_delimiter,
    help="Opening and closing characters for --mode delimited, e.g. '[]'. Repeatable.",
)
@click.option("--prefix", "prefixes", multiple=True, help="Literal prefix for --mode specific. Repeatable.")
@click.option(
    "--pattern",
    type=str,
    default=DEFAULT_LONGEST_MATCH_PATTERN,
    help="Regex a prefix must fully match in --mode longest.",
)
@click.option(
    "--min",
    "min_occurrences",
    type=click.IntRange(min=1),
    default=None,
    help="Minimum number of files sharing a prefix. Defaults to 1 for --mode specific, 2 otherwise.",
)
def detect(
    directories: tuple[Path, ...],
    mode: str,
    delimiters: list[tuple[str, str]],
    prefixes: tuple[str, ...],
    pattern: str,
    min_occurrences: int | None,
) -> None:
    """Show every prefix group found in each directory, without renaming anything.

    Examples:

        ftmi detect ~/Pictures --mode specific --prefix IMG_ --prefix DSC_

        ftmi detect ~/Music --mode delimited --delimiter '[]'
    """
    if mode == "specific":
        detection = SpecificPrefixes(prefixes=list(prefixes or DEFAULT_SPECIFIC_PREFIXES))
        default_min = 1
    elif mode == "delimited":
        detection = DelimiterOnly(delimiters=delimiters or list(DEFAULT_DETECT_DELIMITERS))
        default_min = DEFAULT_MIN_OCCURRENCES
    elif mode == "longest":
        detection = LongestMatch(pattern=pattern)
        default_min = DEFAULT_MIN_OCCURRENCES
    else:
        detection = DetectAll()
        default_min = DEFAULT_MIN_OCCURRENCES

    options = PrefixOptions(mode=detection, min_occurrences=min_occurrences or default_min)
    try:
        scanner = PrefixScanner(options)
    except FtmiError as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise SystemExit(1) from e

    queued = [path.expanduser().resolve() for path in directories]
    if not queued and _stdin_is_piped():
        queued = _read_directories(sys.stdin)
    if not queued:
        console.print("[bold red]Error:[/bold red] No directories given.")
        raise SystemExit(1)

    failures = 0
    for directory in queued:
        try:
            groups = scanner.scan(directory)
        except ScanError as e:
            console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
            failures += 1
            continue

        console.print(f"[bold cyan]{escape(str(directory))}[/bold cyan]")
        if not groups:
            console.print("  [yellow]No prefixes found.[/yellow]")
            continue
        for group in groups:
            console.print(f"  [magenta]{escape(group.prefix)}[/magenta] ({group.occurrences} file(s))")
            for path in group.paths:
                console.print(f"    {escape(path.name)}")

    if failures:
        raise SystemExit(1)

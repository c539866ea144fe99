# Copyright (C) 2025 Torsten Knodt and contributors
# GNU General Public License
# SPDX-License-Identifier: GPL-3.0-or-later
"""Command-line interface for the .eml metadata extractor."""

import logging
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn

from . import __version__
from .dispatch import SideEffectOptions
from .output import OutputFormat, write_records
from .pipeline import collect_candidates, process_many

LOGGER = logging.getLogger(__name__)

app = typer.Typer(
    name="eml-metadata-extractor",
    help="Extract sender, recipient, date, subject and link metadata from .eml files.",
)

console = Console(stderr=True)


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    # Bare invocation prints the help and exits 0, independent of the click version.
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit(0)


class _WarningTracker(logging.Handler):
    """Handler to track if any warnings were logged."""

    def __init__(self) -> None:
        super().__init__()
        self.warnings_shown = False

    def emit(self, record: logging.LogRecord) -> None:
        if record.levelno >= logging.WARNING:
            self.warnings_shown = True


_warning_tracker = _WarningTracker()


def _parse_log_level(log_level_str: str) -> int:
    """Parse log level from string (name or integer).

    Raises:
        ValueError: If log level is invalid
    """
    try:
        level_int = int(log_level_str)
    except ValueError:
        level_int = None
    if level_int is not None:
        if level_int < 0:
            raise ValueError("Log level must be non-negative")
        return level_int

    level_map = {
        "CRITICAL": logging.CRITICAL,
        "ERROR": logging.ERROR,
        "WARNING": logging.WARNING,
        "INFO": logging.INFO,
        "DEBUG": logging.DEBUG,
    }
    level_name = log_level_str.upper()
    if level_name in level_map:
        return level_map[level_name]

    raise ValueError(
        f"Invalid log level '{log_level_str}'. "
        f"Use log level names (CRITICAL, ERROR, WARNING, INFO, DEBUG) "
        f"or non-negative integers."
    )


def _setup_logging(verbose: int, quiet: int, log_level: Optional[str]) -> int:
    """Configure logging from -v/-q counts or an explicit level; return the level.

    Each -v lowers and each -q raises the level by one 10-point step, starting
    from WARNING or from ``log_level`` when given.
    """
    base_level = _parse_log_level(log_level) if log_level is not None else logging.WARNING
    level = max(0, base_level - (verbose - quiet) * 10)

    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
        force=True,
    )

    _warning_tracker.warnings_shown = False
    logging.getLogger().addHandler(_warning_tracker)

    LOGGER.info("Log level set to %d (%s)", level, logging.getLevelName(level))
    return level


@app.command()
def run(
    directory: Path = typer.Argument(..., help="Directory containing .eml files"),
    recursive: bool = typer.Option(
        False, "-r", "--recursive", help="Also process .eml files in subdirectories"
    ),
    json_output: bool = typer.Option(False, "--json", help="Print records as JSON"),
    csv_output: bool = typer.Option(False, "--csv", help="Print records as CSV (default)"),
    html_out_dir: Optional[Path] = typer.Option(
        None, "--eml2html-to", help="Write each HTML body to a mirrored tree under this directory"
    ),
    rename_by_header: bool = typer.Option(
        False, "--rename-by-header", help="Rename files in place to '<date_time> <subject>.eml'"
    ),
    rename_by_header_to: Optional[Path] = typer.Option(
        None,
        "--rename-by-header-to",
        help="Copy files into a mirrored tree under this directory with header-based names",
    ),
    jobs: int = typer.Option(0, "-j", "--jobs", min=0, help="Parallel workers (default: CPU count)"),
    ordered: bool = typer.Option(
        False, "--ordered", help="Emit records in input order instead of completion order"
    ),
    verbose: int = typer.Option(
        0, "-v", "--verbose", count=True, help="Increase verbosity (-v: INFO, -vv: DEBUG)"
    ),
    quiet: int = typer.Option(
        0, "-q", "--quiet", count=True, help="Decrease verbosity (-q: ERROR, -qq: CRITICAL)"
    ),
    log_level: Optional[str] = typer.Option(
        None, "-l", "--log-level", help="Explicit log level name or non-negative integer"
    ),
) -> None:
    """Extract metadata from the .eml files in DIRECTORY."""
    if json_output and csv_output:
        raise typer.BadParameter("--json and --csv are mutually exclusive")

    try:
        current_level = _setup_logging(verbose, quiet, log_level)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--log-level") from exc

    options = SideEffectOptions(
        html_out_dir=html_out_dir,
        rename_in_place=rename_by_header,
        rename_to_dir=rename_by_header_to,
    )
    if rename_by_header and rename_by_header_to is not None:
        LOGGER.info("--rename-by-header-to takes precedence over --rename-by-header")

    try:
        candidates = collect_candidates(directory, recursive=recursive)
    except OSError as exc:
        LOGGER.critical("Cannot collect input files: %s", exc)
        raise typer.Exit(1) from exc

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
        disable=not console.is_terminal,
    ) as progress:
        progress.add_task(f"Processing {len(candidates)} file(s)...", total=None)
        result = process_many(candidates, directory, options, jobs=jobs, ordered=ordered)

    if options.active:
        console.print(
            f"[green]Processed {len(result.records)}/{len(candidates)} file(s); "
            f"side effects done, record output skipped.[/green]"
        )
        if result.warnings:
            console.print(f"[yellow]{len(result.warnings)} side-effect warning(s)[/yellow]")
    else:
        fmt = OutputFormat.JSON if json_output else OutputFormat.CSV
        write_records(result.records, sys.stdout, fmt)

    if _warning_tracker.warnings_shown and current_level > logging.DEBUG:
        LOGGER.info("Issues detected during processing. Rerun with -vv or -l DEBUG for details.")


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"eml-metadata-extractor {__version__}")


if __name__ == "__main__":
    app()

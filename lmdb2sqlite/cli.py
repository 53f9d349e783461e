"""
CLI: argument parsing, dry-run and verify-only modes, and the main
migration pipeline.
"""

import sys
import logging
import argparse
import traceback
from pathlib import Path

from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich import box

from lmdb2sqlite import (
    console, CONFIG_FILE_NAME, DEFAULT_WORK_DIR, ERROR_POLICIES, REPORT_FILE_NAME,
)
from lmdb2sqlite.config import MigrationConfig, init_config, load_config
from lmdb2sqlite.errors import ConfigError, MigrationError
from lmdb2sqlite.orchestrator import MigrationPaths, MigrationResult, MigrationRunner, MigrationState
from lmdb2sqlite.reporting import generate_html_report, generate_verification_report
from lmdb2sqlite.schema import AUTH_SCHEMA, MAIN_SCHEMA
from lmdb2sqlite.tables import AUTH_STEPS, MAIN_STEPS
from lmdb2sqlite.validation import validate_migration

STATE_STYLES = {
    MigrationState.SUCCESS: ("green", "✓ Migration completed successfully!"),
    MigrationState.PARTIAL_FAILURE: ("yellow", "⚠ Main database migrated, auth database failed"),
    MigrationState.ABORTED: ("red", "✗ Migration aborted before any write"),
    MigrationState.FAILED: ("red", "✗ Migration failed"),
}


def parse_args(argv=None):
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(
        prog="lmdb2sqlite",
        description="Mint LMDB → SQLite Migration Tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  lmdb2sqlite --init          Create config file template\n"
            "  lmdb2sqlite --dry-run       Decode everything, write nothing\n"
            "  lmdb2sqlite                 Run full migration\n"
            "  lmdb2sqlite --verify-only   Compare an existing target with the source\n"
        ),
    )
    parser.add_argument(
        "--work-dir",
        type=Path,
        default=DEFAULT_WORK_DIR,
        help=f"Directory holding the mint databases (default: {DEFAULT_WORK_DIR})",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help=f"Config file (default: <work-dir>/{CONFIG_FILE_NAME})",
    )
    parser.add_argument(
        "--init",
        action="store_true",
        help=f"Create {CONFIG_FILE_NAME} template and exit",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--dry-run",
        action="store_true",
        help="Check preconditions and decode every record — nothing is written",
    )
    mode.add_argument(
        "--verify-only",
        action="store_true",
        help="Verify an existing target against the source, record by record",
    )
    parser.add_argument("--on-decode-error", choices=ERROR_POLICIES, help="Override the decode error policy")
    parser.add_argument("--on-missing-keyset", choices=ERROR_POLICIES, help="Override the missing keyset policy")
    parser.add_argument(
        "--auth-non-fatal",
        action="store_true",
        help="Report an auth database failure as a partial failure instead of a failure",
    )
    parser.add_argument("--no-report", action="store_true", help="Do not write the HTML report")
    parser.add_argument("--verbose", action="store_true", help="Show full detailed tables and debug logging")
    return parser.parse_args(argv)


def setup_logging(verbose: bool):
    """Route package logging through the shared rich console."""
    logger = logging.getLogger("lmdb2sqlite")
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(console=console, show_path=False, markup=False)
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)


def apply_overrides(config: MigrationConfig, args) -> MigrationConfig:
    """CLI flags win over the config file."""
    if args.on_decode_error:
        config.on_decode_error = args.on_decode_error
    if args.on_missing_keyset:
        config.on_missing_keyset = args.on_missing_keyset
    if args.auth_non_fatal:
        config.auth_failure_fatal = False
    if args.no_report:
        config.report = False
    return config


def banner(subtitle: str, style: str = "bright_cyan"):
    console.print(
        Panel(
            "[bold white]Mint LMDB → SQLite Migration Tool[/bold white]\n"
            f"[dim]{subtitle}[/dim]",
            border_style=style,
            padding=(1, 4),
        )
    )


def print_paths(paths: MigrationPaths):
    console.print(
        Panel(
            f"[bold]Source:[/bold]       {paths.source}\n"
            f"[bold]Target:[/bold]       {paths.target}\n"
            f"[bold]Auth source:[/bold]  {paths.auth_source}\n"
            f"[bold]Auth target:[/bold]  {paths.auth_target}",
            title="Migration Summary",
            border_style="yellow",
        )
    )


def summary_table(result: MigrationResult, dry_run: bool = False) -> Table:
    table = Table(box=box.ROUNDED, show_lines=False, pad_edge=True)
    table.add_column("Database", style="dim")
    table.add_column("Table", style="cyan", min_width=18)
    table.add_column("Read", justify="right", style="yellow")
    if not dry_run:
        table.add_column("Written", justify="right", style="green")
    table.add_column("Skipped", justify="right")
    table.add_column("Status", justify="center")

    for stats in result.tables:
        color = {"ok": "green", "pending": "yellow"}.get(stats.status, "red")
        row = [stats.database, stats.table, f"{stats.read:,}"]
        if not dry_run:
            row.append(f"{stats.written:,}")
        row += [f"{stats.skipped:,}", f"[{color}]{stats.status}[/{color}]"]
        table.add_row(*row)

    if result.tables:
        table.add_section()
        footer = [f"[bold]{len(result.tables)} tables[/bold]", "", f"[bold]{sum(t.read for t in result.tables):,}[/bold]"]
        if not dry_run:
            footer.append(f"[bold]{result.total_written:,}[/bold]")
        footer += [f"[bold]{sum(t.skipped for t in result.tables):,}[/bold]", ""]
        table.add_row(*footer)
    return table


def dry_run(paths: MigrationPaths, config: MigrationConfig) -> int:
    """Validate preconditions and decode every record without writing anything."""
    banner("🔍 DRY RUN — No data will be written", style="bright_magenta")
    print_paths(paths)

    result = MigrationRunner(paths, config).dry_run()

    if result.tables:
        console.print(summary_table(result, dry_run=True))
    if result.auth_skipped:
        console.print(f"  [dim]No auth database at {paths.auth_source}, auth would be skipped.[/dim]")

    if result.state is MigrationState.SUCCESS:
        total = sum(t.expected for t in result.tables)
        console.print(
            Panel(
                "[bold green]✓ Dry run passed — everything looks good![/bold green]\n\n"
                f"{total:,} records ready to migrate. Run:\n"
                "  [cyan]lmdb2sqlite[/cyan]",
                border_style="green",
                padding=(1, 2),
            )
        )
    else:
        console.print(
            Panel(
                "[bold red]✗ Dry run found issues.[/bold red]\n"
                f"[yellow]{escape(str(result.error))}[/yellow]",
                border_style="red",
                padding=(1, 2),
            )
        )
    return result.exit_code


def verify_only(paths: MigrationPaths, config: MigrationConfig, verbose: bool = False) -> int:
    """Deep verification of an already migrated target against its source."""
    banner("🔎 VERIFY ONLY — Source and target are opened read-only", style="bright_blue")
    print_paths(paths)

    databases = [("main", paths.source, paths.target, MAIN_STEPS, MAIN_SCHEMA)]
    if paths.auth_source.exists():
        databases.append(("auth", paths.auth_source, paths.auth_target, AUTH_STEPS, AUTH_SCHEMA))
    else:
        console.print(f"  [dim]No auth database at {paths.auth_source}, auth skipped.[/dim]")

    reports = []
    for database, source, target, steps, schema in databases:
        console.print(f"\n[bold]Verifying {database} database[/bold]")
        try:
            reports.append(validate_migration(source, target, steps, schema, database=database, verbose=verbose))
        except MigrationError as e:
            console.print(Panel(f"[bold red]✗ Cannot verify:[/bold red] {escape(str(e))}", border_style="red"))
            return MigrationState.ABORTED.exit_code

    if config.report:
        try:
            html_path = generate_verification_report(reports, paths.work_dir / REPORT_FILE_NAME)
            console.print(f"\n  [green]✓[/green] Detailed report generated: [cyan]{html_path}[/cyan]")
        except OSError as e:
            console.print(f"\n  [red]✗ HTML report error: {e}[/red]")

    if all(r["all_passed"] for r in reports):
        console.print(
            Panel(
                "[bold green]✓ Verification passed[/bold green]\n"
                "[green]Every source record is present and identical in the target.[/green]",
                border_style="green",
                padding=(1, 2),
            )
        )
        return 0

    console.print(
        Panel(
            "[bold red]✗ Verification found differences[/bold red]\n"
            "Check the issues above or the HTML report.",
            border_style="red",
            padding=(1, 2),
        )
    )
    return MigrationState.FAILED.exit_code


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(args.verbose)

    work_dir = args.work_dir.expanduser()
    config_file = args.config.expanduser() if args.config else work_dir / CONFIG_FILE_NAME

    # ── Handle --init flag ────────────────────────────────────
    if args.init:
        banner("Configuration Setup")
        init_config(config_file)
        return 0

    # ── Load config (needed by every mode) ────────────────────
    try:
        config = apply_overrides(load_config(config_file), args)
    except ConfigError as e:
        console.print(f"\n[red]✗ Invalid config file:[/red] {config_file}")
        for issue in e.issues:
            console.print(f"    [red]•[/red] {escape(issue)}")
        console.print(f"\n  [dim]Fix the file or run with --init to recreate {CONFIG_FILE_NAME}.[/dim]\n")
        return MigrationState.ABORTED.exit_code

    work_dir.mkdir(parents=True, exist_ok=True)
    paths = MigrationPaths.from_work_dir(work_dir)

    if args.dry_run:
        return dry_run(paths, config)
    if args.verify_only:
        return verify_only(paths, config, verbose=args.verbose)

    # ── Banner ────────────────────────────────────────────────
    banner("Embedded key-value store → SQL database")
    if config_file.exists():
        console.print(f"  [green]✓[/green] Config loaded from [cyan]{config_file}[/cyan]")
    else:
        console.print("  [dim]No config file, using defaults.[/dim]")
    print_paths(paths)

    # ── Migrate ───────────────────────────────────────────────
    result = MigrationRunner(paths, config).run()

    # ── Report ────────────────────────────────────────────────
    if config.report and result.state is not MigrationState.ABORTED:
        try:
            html_path = generate_html_report(result)
            console.print(f"\n  [green]✓[/green] Detailed report generated: [cyan]{html_path}[/cyan]")
        except OSError as e:
            console.print(f"\n  [red]✗ HTML report error: {e}[/red]")

    # ── Summary ───────────────────────────────────────────────
    console.print("")
    if result.tables:
        console.print(summary_table(result))

    color, headline = STATE_STYLES[result.state]
    lines = [f"[bold {color}]{headline}[/bold {color}]"]
    if result.auth_skipped:
        lines.append("[dim]Auth database not present, auth skipped.[/dim]")
    if result.error is not None:
        lines.append(f"\n[{color}]{escape(str(result.error))}[/{color}]")
    if result.state is MigrationState.SUCCESS:
        lines.append(f"\n{result.total_written:,} rows written to [bold cyan]{paths.target.name}[/bold cyan]")
    console.print(Panel("\n".join(lines), border_style=color, padding=(1, 2)))

    return result.exit_code


def run():
    """Console-script entry point."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        console.print("\n[dim]Migration cancelled by user.[/dim]")
        sys.exit(130)
    except Exception as e:
        console.print(f"\n[red]Unexpected error: {e}[/red]")
        console.print("[dim]Please report this issue with the full traceback.[/dim]")
        traceback.print_exc()
        sys.exit(1)

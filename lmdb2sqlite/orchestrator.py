"""
Migration orchestrator: preconditions, per-table sequencing, error policy,
count verification and the terminal state of a run.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from rich.progress import Progress, SpinnerColumn, TextColumn

from lmdb2sqlite import (
    console, POLICY_ABORT,
    SOURCE_DB_FILE, TARGET_DB_FILE, AUTH_SOURCE_DB_FILE, AUTH_TARGET_DB_FILE,
)
from lmdb2sqlite.config import MigrationConfig
from lmdb2sqlite.errors import (
    DecodeError, MigrationError, ReferentialIntegrityError, VerificationMismatch,
)
from lmdb2sqlite.mapper import Row, SchemaMapper
from lmdb2sqlite.schema import AUTH_SCHEMA, MAIN_SCHEMA
from lmdb2sqlite.schema_diff import check_existing_schema
from lmdb2sqlite.source import AuthAbsent, AuthPresent, SourceStore, open_auth_store
from lmdb2sqlite.tables import AUTH_STEPS, MAIN_STEPS, TableStep
from lmdb2sqlite.validation import verify_counts
from lmdb2sqlite.writer import TargetWriter, inspect_target

logger = logging.getLogger(__name__)

MAIN_DATABASE = "main"
AUTH_DATABASE = "auth"


class MigrationState(Enum):
    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"
    ABORTED = "aborted"
    FAILED = "failed"

    @property
    def exit_code(self) -> int:
        return {
            MigrationState.SUCCESS: 0,
            MigrationState.FAILED: 1,
            MigrationState.ABORTED: 2,
            MigrationState.PARTIAL_FAILURE: 3,
        }[self]


@dataclass
class MigrationPaths:
    work_dir:    Path
    source:      Path
    target:      Path
    auth_source: Path
    auth_target: Path

    @classmethod
    def from_work_dir(cls, work_dir) -> "MigrationPaths":
        work_dir = Path(work_dir)
        return cls(
            work_dir=work_dir,
            source=work_dir / SOURCE_DB_FILE,
            target=work_dir / TARGET_DB_FILE,
            auth_source=work_dir / AUTH_SOURCE_DB_FILE,
            auth_target=work_dir / AUTH_TARGET_DB_FILE,
        )


@dataclass
class TableStats:
    database: str
    table:    str
    source:   str
    read:     int = 0
    written:  int = 0
    skipped:  int = 0
    status:   str = "pending"
    errors:   list = field(default_factory=list)

    @property
    def expected(self) -> int:
        return self.read - self.skipped


@dataclass
class MigrationResult:
    paths:        MigrationPaths
    state:        Optional[MigrationState] = None
    tables:       list[TableStats] = field(default_factory=list)
    mismatches:   list[VerificationMismatch] = field(default_factory=list)
    auth_skipped: bool = False
    error:        Optional[MigrationError] = None
    dry_run:      bool = False

    def finish(self, state: MigrationState, error: MigrationError = None) -> "MigrationResult":
        self.state = state
        self.error = error
        return self

    def stats_for(self, database: str) -> list[TableStats]:
        return [t for t in self.tables if t.database == database]

    def get(self, database: str, table: str) -> Optional[TableStats]:
        for stats in self.tables:
            if stats.database == database and stats.table == table:
                return stats
        return None

    @property
    def exit_code(self) -> int:
        return self.state.exit_code

    @property
    def total_written(self) -> int:
        return sum(t.written for t in self.tables)


class MigrationRunner:
    """Runs one migration of a work dir. Single-shot: no retries."""

    def __init__(self, paths: MigrationPaths, config: MigrationConfig = None):
        self.paths = paths
        self.config = config or MigrationConfig()
        self.source: Optional[SourceStore] = None
        self.auth = AuthAbsent(paths.auth_source)

    # ── Preconditions ────────────────────────────────────────

    def check_preconditions(self):
        """Everything that must hold before the first write. Raises on failure."""
        inspect_target(self.paths.target, MAIN_SCHEMA)
        check_existing_schema(self.paths.target, MAIN_SCHEMA)
        if self.paths.auth_source.exists():
            inspect_target(self.paths.auth_target, AUTH_SCHEMA)
            check_existing_schema(self.paths.auth_target, AUTH_SCHEMA)

        self.source = SourceStore.open_main(self.paths.source)
        self.source.check_version()

        self.auth = open_auth_store(self.paths.auth_source)
        if isinstance(self.auth, AuthPresent):
            self.auth.store.check_version()

    def close(self):
        if self.source is not None:
            self.source.close()
            self.source = None
        if isinstance(self.auth, AuthPresent):
            self.auth.store.close()
            self.auth = AuthAbsent(self.paths.auth_source)

    # ── Per-table work ───────────────────────────────────────

    def _apply_policy(self, error: MigrationError, policy: str, stats: TableStats):
        stats.errors.append(error)
        if policy == POLICY_ABORT:
            stats.status = "failed"
            raise error
        stats.skipped += 1
        logger.warning("Skipping record in %s: %s", stats.table, error)

    def collect_rows(self, step: TableStep, store: SourceStore, mapper: SchemaMapper,
                     stats: TableStats) -> list[Row]:
        """Decode and map every record of one table (nothing is written here)."""
        rows = []
        for index, (key, value) in enumerate(step.pairs(store)):
            stats.read += 1
            try:
                record = step.decode(key, value)
                rows.extend(mapper.map(record))
            except DecodeError as e:
                error = DecodeError(e.table, e.offset, e.reason, record=index)
                self._apply_policy(error, self.config.on_decode_error, stats)
            except ReferentialIntegrityError as e:
                self._apply_policy(e, self.config.on_missing_keyset, stats)
        return rows

    def migrate_database(self, database: str, store: SourceStore, target: Path,
                         schema, steps: list[TableStep], result: MigrationResult):
        console.print(f"\n[bold]Migrating {database} database[/bold] [dim]{store.path} → {target}[/dim]")
        mapper = SchemaMapper()

        with TargetWriter.initialize(target, schema) as writer:
            for step in steps:
                stats = TableStats(database, step.target, step.label)
                result.tables.append(stats)

                with Progress(
                    SpinnerColumn(),
                    TextColumn("[progress.description]{task.description}"),
                    console=console,
                    transient=True,
                ) as progress:
                    task = progress.add_task(f"[cyan]Reading {step.label}...", total=1)
                    rows = self.collect_rows(step, store, mapper, stats)
                    progress.update(task, completed=1)

                try:
                    stats.written = writer.write_batch(step.target, rows)
                except MigrationError:
                    stats.status = "failed"
                    raise

                stats.status = "ok"
                skipped = f", {stats.skipped} skipped" if stats.skipped else ""
                console.print(
                    f"  [green]✓[/green] {step.target}: "
                    f"{stats.read} read, {stats.written} written{skipped}"
                )

            mismatches = verify_counts(writer, result.stats_for(database))
            result.mismatches.extend(mismatches)
            if mismatches:
                raise mismatches[0]

    # ── Entry points ─────────────────────────────────────────

    def run(self) -> MigrationResult:
        result = MigrationResult(paths=self.paths)
        try:
            try:
                self.check_preconditions()
            except MigrationError as e:
                return result.finish(MigrationState.ABORTED, e)

            try:
                self.migrate_database(
                    MAIN_DATABASE, self.source, self.paths.target, MAIN_SCHEMA, MAIN_STEPS, result
                )
            except MigrationError as e:
                return result.finish(MigrationState.FAILED, e)

            if isinstance(self.auth, AuthAbsent):
                console.print(f"\n  [dim]No auth database at {self.auth.path} — auth skipped.[/dim]")
                result.auth_skipped = True
                return result.finish(MigrationState.SUCCESS)

            try:
                self.migrate_database(
                    AUTH_DATABASE, self.auth.store, self.paths.auth_target, AUTH_SCHEMA, AUTH_STEPS, result
                )
            except MigrationError as e:
                state = MigrationState.FAILED if self.config.auth_failure_fatal else MigrationState.PARTIAL_FAILURE
                return result.finish(state, e)

            return result.finish(MigrationState.SUCCESS)
        finally:
            self.close()

    def dry_run(self) -> MigrationResult:
        """Check preconditions and decode/map every record without writing anything."""
        result = MigrationResult(paths=self.paths, dry_run=True)
        try:
            try:
                self.check_preconditions()
            except MigrationError as e:
                return result.finish(MigrationState.ABORTED, e)

            databases = [(MAIN_DATABASE, self.source, MAIN_STEPS)]
            if isinstance(self.auth, AuthPresent):
                databases.append((AUTH_DATABASE, self.auth.store, AUTH_STEPS))
            else:
                result.auth_skipped = True

            for database, store, steps in databases:
                mapper = SchemaMapper()
                for step in steps:
                    stats = TableStats(database, step.target, step.label)
                    result.tables.append(stats)
                    try:
                        self.collect_rows(step, store, mapper, stats)
                    except MigrationError as e:
                        return result.finish(MigrationState.FAILED, e)
                    stats.status = "ok"

            return result.finish(MigrationState.SUCCESS)
        finally:
            self.close()

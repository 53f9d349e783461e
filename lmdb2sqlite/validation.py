"""
Validation: row counts, record contents, blind signature amounts and
constraint discovery.
"""

import sqlite3
from collections import defaultdict
from pathlib import Path

from rich.table import Table
from rich import box
from rich.markup import escape

from lmdb2sqlite import console
from lmdb2sqlite.errors import (
    DecodeError, ReferentialIntegrityError, TargetNotFound, VerificationMismatch,
)
from lmdb2sqlite.mapper import SchemaMapper
from lmdb2sqlite.schema import TableDef
from lmdb2sqlite.schema_diff import schema_diff
from lmdb2sqlite.source import SourceStore
from lmdb2sqlite.codec import BLIND_SIGNATURES_TABLE, CONFIG_TABLE, decode_blind_signature


def open_target_readonly(path: Path) -> sqlite3.Connection:
    """Open an existing target without any chance of modifying it."""
    path = Path(path)
    if not path.is_file():
        raise TargetNotFound(path)
    conn = sqlite3.connect(f"{path.resolve().as_uri()}?mode=ro", uri=True)
    conn.row_factory = sqlite3.Row
    return conn


def get_target_counts(conn: sqlite3.Connection, tables: list[TableDef]) -> dict[str, int]:
    """Get row counts for the expected target tables (-1 when a table is missing)."""
    counts = {}
    for table in tables:
        try:
            counts[table.name] = conn.execute(f'SELECT COUNT(*) FROM "{table.name}"').fetchone()[0]
        except sqlite3.OperationalError as e:
            console.print(f"  [yellow]⚠ Could not count rows in `{table.name}`:[/yellow] {e}")
            counts[table.name] = -1
    return counts


def verify_counts(writer, stats_list) -> list[VerificationMismatch]:
    """Compare rows in the target with rows read (minus skipped) for each migrated table."""
    mismatches = []
    for stats in stats_list:
        actual = writer.count(stats.table)
        if actual != stats.expected:
            stats.status = "mismatch"
            mismatches.append(VerificationMismatch(stats.table, stats.expected, actual))

    passed = len(stats_list) - len(mismatches)
    color = "green" if not mismatches else "red"
    console.print(f"  [{color}]Row counts:[/] {passed}/{len(stats_list)} tables match")
    for mismatch in mismatches:
        console.print(f"    [red]✗[/red] {escape(str(mismatch))}")
    return mismatches


def get_target_constraints(conn: sqlite3.Connection, tables: list[TableDef]) -> dict:
    """Get primary keys, foreign keys and indexes from the target."""
    pks = []
    fks = []
    for table in tables:
        for row in conn.execute(f'PRAGMA table_info("{table.name}")'):
            if row[5]:
                pks.append((table.name, row[1]))
        for row in conn.execute(f'PRAGMA foreign_key_list("{table.name}")'):
            fks.append((table.name, row[3], row[2], row[4]))

    indexes = [
        (row[0], row[1]) for row in conn.execute(
            "SELECT tbl_name, name FROM sqlite_master "
            "WHERE type = 'index' AND name NOT LIKE 'sqlite_autoindex_%' "
            "ORDER BY tbl_name, name"
        )
    ]
    return {"primary_keys": pks, "foreign_keys": fks, "indexes": indexes}


def _fetch_by_primary_key(conn: sqlite3.Connection, table: TableDef, values: dict):
    pk = table.primary_key
    where = " AND ".join(f"{c} = ?" for c in pk)
    row = conn.execute(
        f'SELECT * FROM "{table.name}" WHERE {where}', [values[c] for c in pk]
    ).fetchone()
    return None if row is None else dict(row)


def verify_contents(store: SourceStore, conn: sqlite3.Connection, steps, tables: list[TableDef]) -> list[dict]:
    """Re-read every source record and compare it with the target row under the same key."""
    table_defs = {table.name: table for table in tables}
    mapper = SchemaMapper()
    results = []

    for step in steps:
        entry = {"table": step.target, "checked": 0, "missing": 0, "different": 0, "invalid": 0, "passed": True}
        for key, value in step.pairs(store):
            try:
                rows = mapper.map(step.decode(key, value))
            except (DecodeError, ReferentialIntegrityError):
                entry["invalid"] += 1
                continue

            for row in rows:
                entry["checked"] += 1
                actual = _fetch_by_primary_key(conn, table_defs[row.table], row.values)
                if actual is None:
                    entry["missing"] += 1
                elif any(actual.get(col) != val for col, val in row.values.items()):
                    entry["different"] += 1

        entry["passed"] = entry["missing"] == 0 and entry["different"] == 0 and entry["invalid"] == 0
        results.append(entry)
    return results


def verify_blind_signature_amounts(store: SourceStore, conn: sqlite3.Connection) -> list[dict]:
    """Per keyset, compare blind signature counts and amount totals."""
    source = defaultdict(lambda: [0, 0])
    for key, value in store.scan(BLIND_SIGNATURES_TABLE):
        try:
            signature = decode_blind_signature(key, value)
        except DecodeError:
            continue
        totals = source[signature.keyset_id.hex()]
        totals[0] += 1
        totals[1] += signature.amount

    target = {
        row[0]: (row[1], row[2]) for row in conn.execute(
            "SELECT keyset_id, COUNT(*), COALESCE(SUM(amount), 0) FROM blind_signature GROUP BY keyset_id"
        )
    }

    results = []
    for keyset_id in sorted(set(source) | set(target)):
        s_count, s_amount = source.get(keyset_id, (0, 0))
        t_count, t_amount = target.get(keyset_id, (0, 0))
        results.append({
            "keyset_id": keyset_id,
            "source_count": s_count,
            "target_count": t_count,
            "source_amount": s_amount,
            "target_amount": t_amount,
            "passed": s_count == t_count and s_amount == t_amount,
        })
    return results


def validate_migration(source_path: Path, target_path: Path, steps, tables: list[TableDef],
                       database: str = "main", verbose: bool = False) -> dict:
    """Run the full validation suite for one database and collect results."""
    all_passed = True
    report = {
        "database": database,
        "row_counts": {"tables": [], "passed": 0, "failed": 0, "total": 0},
        "contents": [],
        "amounts": [],
        "schema": None,
        "constraints": {},
        "all_passed": True,
        "validation_errors": [],
    }

    source_tables = tuple(dict.fromkeys([CONFIG_TABLE] + [step.source for step in steps]))
    with SourceStore(source_path, source_tables) as store:
        store.check_version()
        conn = open_target_readonly(target_path)
        try:
            # ── Row count comparison ─────────────────────────
            if verbose:
                console.print(f"\n  [bold]Row Count Comparison ({database})[/bold]")

            target_counts = get_target_counts(conn, tables)
            count_table = Table(box=box.ROUNDED, show_lines=False, pad_edge=True)
            count_table.add_column("Table", style="cyan", min_width=20)
            count_table.add_column("Source", justify="right", style="yellow")
            count_table.add_column("SQLite", justify="right", style="green")
            count_table.add_column("Status", justify="center")

            for step in steps:
                s_count = sum(1 for _ in step.pairs(store))
                t_count = target_counts.get(step.target, -1)
                passed = s_count == t_count
                status = "✓ OK" if passed else ("✗ MISSING" if t_count < 0 else "✗ MISMATCH")
                report["row_counts"]["passed" if passed else "failed"] += 1
                if not passed:
                    all_passed = False
                report["row_counts"]["tables"].append({
                    "table": step.target,
                    "source": s_count,
                    "target": t_count,
                    "status": status,
                    "passed": passed,
                })
                rich_status = f"[green]{status}[/green]" if passed else f"[red]{status}[/red]"
                count_table.add_row(step.target, str(s_count), str(t_count), rich_status)
            report["row_counts"]["total"] = len(steps)

            if verbose:
                console.print(count_table)
            else:
                color = "green" if report["row_counts"]["failed"] == 0 else "red"
                console.print(
                    f"  [{color}]Row counts:[/] {report['row_counts']['passed']}/"
                    f"{report['row_counts']['total']} tables match"
                )

            # ── Record contents ──────────────────────────────
            report["contents"] = verify_contents(store, conn, steps, tables)
            bad = [entry for entry in report["contents"] if not entry["passed"]]
            if bad:
                all_passed = False
                for entry in bad:
                    report["validation_errors"].append(
                        f"{entry['table']}: {entry['missing']} missing, "
                        f"{entry['different']} different, {entry['invalid']} unreadable"
                    )
            checked = sum(entry["checked"] for entry in report["contents"])
            color = "green" if not bad else "red"
            console.print(f"  [{color}]Contents:[/] {checked} records compared, {len(bad)} tables with differences")

            # ── Blind signature amounts ──────────────────────
            report["amounts"] = verify_blind_signature_amounts(store, conn)
            if verbose and report["amounts"]:
                amount_table = Table(box=box.SIMPLE, show_lines=False)
                amount_table.add_column("Keyset", style="cyan")
                amount_table.add_column("Signatures", justify="right")
                amount_table.add_column("Amount", justify="right")
                amount_table.add_column("Status", justify="center")
                for entry in report["amounts"]:
                    amount_table.add_row(
                        entry["keyset_id"],
                        f"{entry['source_count']} / {entry['target_count']}",
                        f"{entry['source_amount']} / {entry['target_amount']}",
                        "[green]✓[/green]" if entry["passed"] else "[red]✗[/red]",
                    )
                console.print(amount_table)
            for entry in report["amounts"]:
                if not entry["passed"]:
                    all_passed = False
                    report["validation_errors"].append(
                        f"blind signatures for keyset {entry['keyset_id']}: "
                        f"source {entry['source_count']} / {entry['source_amount']}, "
                        f"target {entry['target_count']} / {entry['target_amount']}"
                    )
            total_amount = sum(entry["source_amount"] for entry in report["amounts"])
            console.print(f"  [green]✓ Blind signatures:[/green] {len(report['amounts'])} keysets, total amount {total_amount}")

            # ── Schema & constraints ─────────────────────────
            report["schema"] = schema_diff(conn, tables, verbose=verbose)
            if report["schema"]["missing"] or report["schema"]["mismatched"]:
                all_passed = False
                report["validation_errors"].append("target schema differs from the expected layout")

            report["constraints"] = get_target_constraints(conn, tables)
            total_constraints = sum(len(v) for v in report["constraints"].values())
            console.print(f"  [green]✓ Constraints:[/green] {total_constraints} objects verified")
        finally:
            conn.close()

    report["all_passed"] = all_passed
    if report["validation_errors"]:
        console.print("\n  [bold red]Validation Issues:[/bold red]")
        for err in report["validation_errors"]:
            console.print(f"    [red]✗[/red] {escape(err)}")

    return report

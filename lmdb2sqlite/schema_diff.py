"""
Schema diff: compare the target's actual columns with the expected layout.
"""

import sqlite3
from pathlib import Path

from rich.table import Table
from rich import box

from lmdb2sqlite import console
from lmdb2sqlite.errors import TargetSchemaMismatch
from lmdb2sqlite.schema import TableDef


def get_target_columns(conn: sqlite3.Connection, table: str) -> list[dict]:
    """Get column-level schema info for one target table."""
    columns = []
    for row in conn.execute(f'PRAGMA table_info("{table}")'):
        columns.append({
            "column": row[1],
            "type": (row[2] or "").upper(),
            "notnull": bool(row[3]),
            "pk": row[5],
        })
    return columns


def schema_diff(conn: sqlite3.Connection, tables: list[TableDef], verbose: bool = False) -> dict:
    """Compare expected vs. actual columns for every table."""
    report = {
        "diffs": [],
        "identical": 0,
        "mismatched": 0,
        "missing": 0,
        "extra": 0,
        "total_columns": 0,
    }

    diff_table = Table(box=box.ROUNDED, show_lines=False, pad_edge=True)
    diff_table.add_column("Table.Column", style="cyan", min_width=25)
    diff_table.add_column("Expected", style="yellow")
    diff_table.add_column("Actual", style="green")
    diff_table.add_column("Status", justify="center")

    for table in tables:
        expected = table.expected_columns()
        actual = {col["column"]: col["type"] for col in get_target_columns(conn, table.name)}

        for column in list(expected) + [c for c in actual if c not in expected]:
            key = f"{table.name}.{column}"
            e_type = expected.get(column)
            a_type = actual.get(column)
            report["total_columns"] += 1

            if e_type is not None and a_type == e_type:
                report["identical"] += 1
                status = "identical"
            elif a_type is None:
                report["missing"] += 1
                status = "missing"
                diff_table.add_row(key, e_type, "—", "[red]✗ missing[/red]")
            elif e_type is None:
                report["extra"] += 1
                status = "extra"
                diff_table.add_row(key, "—", a_type, "[yellow]? extra[/yellow]")
            else:
                report["mismatched"] += 1
                status = "mismatched"
                diff_table.add_row(key, e_type, a_type, "[red]✗ type[/red]")

            report["diffs"].append({"key": key, "expected": e_type or "—", "actual": a_type or "—", "status": status})

    problems = report["missing"] + report["mismatched"] + report["extra"]
    if verbose and problems:
        console.print(diff_table)

    summary_color = "green" if problems == 0 else "red"
    console.print(
        f"  [{summary_color}]Schema diff:[/] {report['identical']} identical, "
        f"{report['mismatched']} mismatched, {report['missing']} missing, {report['extra']} extra"
    )
    return report


def schema_issues(conn: sqlite3.Connection, tables: list[TableDef]) -> list[str]:
    """Describe differences for tables that already exist (absent tables are fine)."""
    existing = {
        row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
    }
    issues = []
    for table in tables:
        if table.name not in existing:
            continue
        expected = table.expected_columns()
        actual = {col["column"]: col["type"] for col in get_target_columns(conn, table.name)}
        for column, e_type in expected.items():
            if column not in actual:
                issues.append(f"{table.name}.{column} missing")
            elif actual[column] != e_type:
                issues.append(f"{table.name}.{column} is {actual[column]}, expected {e_type}")
        for column in actual:
            if column not in expected:
                issues.append(f"{table.name}.{column} unexpected")
    return issues


def check_existing_schema(path: Path, tables: list[TableDef]) -> None:
    """Refuse an existing (empty) target whose tables do not match the expected layout."""
    path = Path(path)
    if not path.exists() or path.stat().st_size == 0:
        return

    conn = sqlite3.connect(f"{path.resolve().as_uri()}?mode=ro", uri=True)
    try:
        issues = schema_issues(conn, tables)
    finally:
        conn.close()

    if issues:
        raise TargetSchemaMismatch(path, issues)

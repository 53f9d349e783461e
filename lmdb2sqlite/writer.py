"""
SQLite target: refuse populated targets, create the schema, write batches
inside transactions.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path

from lmdb2sqlite import TARGET_SCHEMA_VERSION
from lmdb2sqlite.errors import TargetExistsError, WriteError
from lmdb2sqlite.schema import TableDef, schema_statements


def _populated_table(conn: sqlite3.Connection, tables: list[TableDef]):
    """Return (table, rows) for the first expected table holding rows, else None."""
    existing = {
        row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
    }
    for table in tables:
        if table.name not in existing:
            continue
        rows = conn.execute(f'SELECT COUNT(*) FROM "{table.name}"').fetchone()[0]
        if rows > 0:
            return table.name, rows
    return None


def inspect_target(path: Path, tables: list[TableDef]) -> None:
    """Raise TargetExistsError if ``path`` already holds migrated data.

    A missing file, an empty file or a database whose expected tables are
    all empty is accepted. The file is opened read-only and never modified.
    """
    path = Path(path)
    if not path.exists() or path.stat().st_size == 0:
        return

    try:
        conn = sqlite3.connect(f"{path.resolve().as_uri()}?mode=ro", uri=True)
    except sqlite3.Error as e:
        raise TargetExistsError(path, None, None) from e

    try:
        populated = _populated_table(conn, tables)
    except sqlite3.DatabaseError as e:
        raise TargetExistsError(path, None, None) from e
    finally:
        conn.close()

    if populated is not None:
        raise TargetExistsError(path, *populated)


class TargetWriter:
    """Owns one target database connection."""

    def __init__(self, path: Path, tables: list[TableDef], conn: sqlite3.Connection):
        self.path = Path(path)
        self.tables = {table.name: table for table in tables}
        self.conn = conn

    @classmethod
    def initialize(cls, path: Path, tables: list[TableDef]) -> "TargetWriter":
        """Open (or create) the target and make sure its schema exists."""
        inspect_target(path, tables)
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(str(path), isolation_level=None)
        conn.row_factory = sqlite3.Row
        writer = cls(path, tables, conn)
        try:
            conn.execute("PRAGMA foreign_keys = ON")
            writer.create_schema()
        except sqlite3.Error as e:
            conn.close()
            raise WriteError("schema", e) from e
        except BaseException:
            conn.close()
            raise
        return writer

    @contextmanager
    def transaction(self):
        """BEGIN IMMEDIATE ... COMMIT, rolled back on any exit by exception."""
        self.conn.execute("BEGIN IMMEDIATE")
        try:
            yield self.conn
        except BaseException:
            if self.conn.in_transaction:
                self.conn.execute("ROLLBACK")
            raise
        else:
            self.conn.execute("COMMIT")

    def create_schema(self):
        with self.transaction() as conn:
            for statement in schema_statements(list(self.tables.values())):
                conn.execute(statement)
            conn.execute(f"PRAGMA user_version = {TARGET_SCHEMA_VERSION}")

    def write_batch(self, table: str, rows) -> int:
        """Insert all ``rows`` (dicts or mapper Rows) into ``table`` in one transaction."""
        values = [getattr(row, "values", row) for row in rows]
        if not values:
            return 0
        if table not in self.tables:
            raise WriteError(table, "table is not part of the target schema")

        columns = list(values[0])
        placeholders = ", ".join("?" for _ in columns)
        sql = f'INSERT INTO "{table}" ({", ".join(columns)}) VALUES ({placeholders})'
        try:
            with self.transaction() as conn:
                conn.executemany(sql, ([v[c] for c in columns] for v in values))
        except (sqlite3.Error, OverflowError, KeyError) as e:
            raise WriteError(table, e) from e
        return len(values)

    def count(self, table: str) -> int:
        return self.conn.execute(f'SELECT COUNT(*) FROM "{table}"').fetchone()[0]

    def table_has_rows(self, table: str) -> bool:
        return self.conn.execute(f'SELECT EXISTS (SELECT 1 FROM "{table}")').fetchone()[0] == 1

    def fetch_all(self, table: str) -> list[dict]:
        return [dict(row) for row in self.conn.execute(f'SELECT * FROM "{table}"')]

    def schema_version(self) -> int:
        return self.conn.execute("PRAGMA user_version").fetchone()[0]

    def close(self):
        self.conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

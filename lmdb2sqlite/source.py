"""
Read-only access to the LMDB source stores (main and optional auth).
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Union

import lmdb

from lmdb2sqlite import SOURCE_DB_VERSION
from lmdb2sqlite.codec import (
    BLIND_SIGNATURES_TABLE, CONFIG_TABLE, DB_VERSION_KEY, ENDPOINTS_TABLE,
    KEYSETS_TABLE, MELT_QUOTES_TABLE, MELT_REQUESTS_TABLE, MINT_QUOTES_TABLE,
    PROOFS_TABLE, decode_db_version,
)
from lmdb2sqlite.errors import SourceNotFound, SourceVersionMismatch

MAIN_TABLES = (
    CONFIG_TABLE,
    KEYSETS_TABLE,
    BLIND_SIGNATURES_TABLE,
    PROOFS_TABLE,
    MINT_QUOTES_TABLE,
    MELT_QUOTES_TABLE,
    MELT_REQUESTS_TABLE,
)
AUTH_TABLES = (
    CONFIG_TABLE,
    KEYSETS_TABLE,
    BLIND_SIGNATURES_TABLE,
    PROOFS_TABLE,
    ENDPOINTS_TABLE,
)

MAX_DBS = 16


class TableScan:
    """Lazy view over one named table.

    Every iteration opens its own read transaction, so the scan can be
    walked any number of times. Pairs come out in LMDB key order.
    """

    def __init__(self, env: lmdb.Environment, db, name: str):
        self._env = env
        self._db = db
        self.name = name

    def __iter__(self) -> Iterator[tuple[bytes, bytes]]:
        with self._env.begin(db=self._db, write=False) as txn:
            for key, value in txn.cursor():
                yield bytes(key), bytes(value)

    def __len__(self) -> int:
        with self._env.begin(db=self._db, write=False) as txn:
            return txn.stat(self._db)["entries"]


class SourceStore:
    """One LMDB file opened read-only, exposing its named tables."""

    def __init__(self, path: Path, tables=MAIN_TABLES):
        self.path = Path(path)
        if not self.path.is_file():
            raise SourceNotFound(self.path)

        try:
            self.env = lmdb.open(
                str(self.path),
                subdir=False,
                readonly=True,
                lock=False,
                max_dbs=MAX_DBS,
            )
        except lmdb.Error as e:
            raise SourceNotFound(self.path) from e

        self._dbs = {}
        try:
            for name in tables:
                try:
                    self._dbs[name] = self.env.open_db(name.encode("ascii"), create=False)
                except lmdb.NotFoundError as e:
                    raise SourceNotFound(self.path, name) from e
        except SourceNotFound:
            self.env.close()
            raise

    @classmethod
    def open_main(cls, path: Path) -> "SourceStore":
        return cls(path, MAIN_TABLES)

    @classmethod
    def open_auth(cls, path: Path) -> "SourceStore":
        return cls(path, AUTH_TABLES)

    @property
    def tables(self) -> tuple[str, ...]:
        return tuple(self._dbs)

    def scan(self, table: str) -> TableScan:
        if table not in self._dbs:
            raise SourceNotFound(self.path, table)
        return TableScan(self.env, self._dbs[table], table)

    def count(self, table: str) -> int:
        return len(self.scan(table))

    def get_config(self, key: bytes):
        """Return the raw value stored under ``key`` in the config table, or None."""
        with self.env.begin(db=self._dbs[CONFIG_TABLE], write=False) as txn:
            value = txn.get(key)
        return None if value is None else bytes(value)

    def check_version(self, expected: int = SOURCE_DB_VERSION) -> int:
        raw = self.get_config(DB_VERSION_KEY)
        if raw is None:
            raise SourceVersionMismatch(None, expected)
        found = decode_db_version(raw)
        if found != expected:
            raise SourceVersionMismatch(found, expected)
        return found

    def close(self):
        self.env.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


# ═════════════════════════════════════════════════════════════
# Optional auth store
# ═════════════════════════════════════════════════════════════

@dataclass
class AuthPresent:
    store: SourceStore

    @property
    def path(self) -> Path:
        return self.store.path


@dataclass
class AuthAbsent:
    path: Path


AuthSource = Union[AuthPresent, AuthAbsent]


def open_auth_store(path: Path) -> AuthSource:
    """Open the auth store if its file exists. A missing file is not an error."""
    path = Path(path)
    if not path.exists():
        return AuthAbsent(path)
    return AuthPresent(SourceStore.open_auth(path))

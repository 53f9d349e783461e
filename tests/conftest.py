import sqlite3

import pytest

from lmdb2sqlite.orchestrator import MigrationPaths
from tests.factories import auth_records, main_records, write_auth_store, write_store


@pytest.fixture
def work_dir(tmp_path):
    path = tmp_path / "mintd"
    path.mkdir()
    return path


@pytest.fixture
def paths(work_dir):
    return MigrationPaths.from_work_dir(work_dir)


@pytest.fixture
def records():
    return main_records()


@pytest.fixture
def source(paths, records):
    return write_store(paths.source, records)


@pytest.fixture
def auth_source(paths):
    return write_auth_store(paths.auth_source, auth_records())


@pytest.fixture
def query():
    """Run one query against a target file and return all rows."""
    def run(path, sql, params=()):
        conn = sqlite3.connect(str(path))
        try:
            return conn.execute(sql, params).fetchall()
        finally:
            conn.close()
    return run

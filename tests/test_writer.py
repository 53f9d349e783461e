import sqlite3

import pytest

from lmdb2sqlite.errors import TargetExistsError, WriteError
from lmdb2sqlite.mapper import SchemaMapper
from lmdb2sqlite.schema import AUTH_SCHEMA, MAIN_SCHEMA
from lmdb2sqlite.writer import TargetWriter, inspect_target
from tests.factories import keyset_id, make_keyset, make_proof


def _keyset_rows(*numbers):
    mapper = SchemaMapper()
    return [row for n in numbers for row in mapper.map(make_keyset(n))]


@pytest.fixture
def writer(paths):
    w = TargetWriter.initialize(paths.target, MAIN_SCHEMA)
    yield w
    w.close()


# ── Schema ──

def test_initialize_creates_schema(writer, query, paths):
    tables = {r[0] for r in query(paths.target, "SELECT name FROM sqlite_master WHERE type = 'table'")}
    assert tables == {t.name for t in MAIN_SCHEMA}
    assert writer.schema_version() == 1


def test_initialize_auth_schema(paths):
    with TargetWriter.initialize(paths.auth_target, AUTH_SCHEMA) as w:
        assert "protected_endpoint" in w.tables
        assert w.count("protected_endpoint") == 0


def test_initialize_on_empty_file(paths):
    paths.target.touch()
    with TargetWriter.initialize(paths.target, MAIN_SCHEMA) as w:
        assert w.count("keyset") == 0


# ── Target refusal ──

def test_inspect_missing_target(paths):
    inspect_target(paths.target, MAIN_SCHEMA)


def test_inspect_schema_only_target(writer, paths):
    inspect_target(paths.target, MAIN_SCHEMA)


def test_inspect_populated_target(writer, paths):
    writer.write_batch("keyset", _keyset_rows(1))
    with pytest.raises(TargetExistsError) as exc:
        inspect_target(paths.target, MAIN_SCHEMA)
    assert exc.value.table == "keyset"
    assert exc.value.rows == 1


def test_initialize_refuses_populated_target(writer, paths):
    writer.write_batch("keyset", _keyset_rows(1, 2))
    before = paths.target.read_bytes()
    with pytest.raises(TargetExistsError):
        TargetWriter.initialize(paths.target, MAIN_SCHEMA)
    assert paths.target.read_bytes() == before


def test_inspect_non_sqlite_file(paths):
    paths.target.write_bytes(b"definitely not sqlite " * 64)
    with pytest.raises(TargetExistsError) as exc:
        inspect_target(paths.target, MAIN_SCHEMA)
    assert exc.value.table is None


# ── Batches ──

def test_write_batch(writer):
    assert writer.write_batch("keyset", _keyset_rows(1, 2, 3)) == 3
    assert writer.count("keyset") == 3
    assert writer.table_has_rows("keyset")


def test_write_batch_accepts_dicts(writer):
    values = [row.values for row in _keyset_rows(1)]
    assert writer.write_batch("keyset", values) == 1
    assert writer.fetch_all("keyset")[0]["id"] == keyset_id(1).hex()


def test_write_empty_batch(writer):
    assert writer.write_batch("proof", []) == 0
    assert not writer.table_has_rows("proof")


def test_failed_batch_rolls_back(writer):
    rows = _keyset_rows(1, 2) + _keyset_rows(2)
    with pytest.raises(WriteError) as exc:
        writer.write_batch("keyset", rows)
    assert exc.value.table == "keyset"
    assert isinstance(exc.value.cause, sqlite3.IntegrityError)
    assert writer.count("keyset") == 0


def test_foreign_key_is_enforced(writer):
    mapper = SchemaMapper()
    mapper.known_keysets.add(keyset_id(7).hex())
    rows = mapper.map(make_proof(1, keyset_id(7)))
    with pytest.raises(WriteError):
        writer.write_batch("proof", rows)
    assert writer.count("proof") == 0


def test_amount_beyond_sqlite_integer(writer):
    writer.write_batch("keyset", _keyset_rows(1))
    mapper = SchemaMapper()
    mapper.map(make_keyset(1))
    rows = mapper.map(make_proof(1, keyset_id(1), amount=2 ** 64 - 1))
    with pytest.raises(WriteError) as exc:
        writer.write_batch("proof", rows)
    assert isinstance(exc.value.cause, OverflowError)
    assert writer.count("proof") == 0


def test_unknown_table(writer):
    with pytest.raises(WriteError):
        writer.write_batch("mint_request", [{"id": 1}])


def test_transaction_rolls_back_on_error(writer):
    with pytest.raises(RuntimeError):
        with writer.transaction() as conn:
            conn.execute("INSERT INTO quote_ttl (id, mint_ttl, melt_ttl) VALUES (1, 2, 3)")
            raise RuntimeError("boom")
    assert writer.count("quote_ttl") == 0
    assert not writer.conn.in_transaction

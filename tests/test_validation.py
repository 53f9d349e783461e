import sqlite3

import pytest

from lmdb2sqlite.errors import SourceVersionMismatch, TargetNotFound
from lmdb2sqlite.orchestrator import MigrationRunner, TableStats
from lmdb2sqlite.schema import AUTH_SCHEMA, MAIN_SCHEMA
from lmdb2sqlite.tables import AUTH_STEPS, MAIN_STEPS
from lmdb2sqlite.validation import (
    get_target_constraints, open_target_readonly, validate_migration, verify_counts,
)
from lmdb2sqlite.writer import TargetWriter
from tests.factories import (
    auth_records, keyset_id, main_records, write_auth_store, write_store,
)


@pytest.fixture
def migrated(source, paths):
    result = MigrationRunner(paths).run()
    assert result.exit_code == 0
    return paths


def _execute(path, sql, params=()):
    conn = sqlite3.connect(str(path))
    try:
        conn.execute(sql, params)
        conn.commit()
    finally:
        conn.close()


def test_validate_clean_migration(migrated):
    report = validate_migration(migrated.source, migrated.target, MAIN_STEPS, MAIN_SCHEMA)

    assert report["all_passed"] is True
    assert report["validation_errors"] == []
    assert report["row_counts"]["passed"] == len(MAIN_STEPS)
    assert all(entry["passed"] for entry in report["contents"])
    assert sum(entry["checked"] for entry in report["contents"]) == 2 + 3 + 6 + 12 + 1 + 1 + 1


def test_blind_signature_amounts_per_keyset(migrated):
    report = validate_migration(migrated.source, migrated.target, MAIN_STEPS, MAIN_SCHEMA)

    amounts = {entry["keyset_id"]: entry for entry in report["amounts"]}
    assert set(amounts) == {keyset_id(n).hex() for n in (1, 2, 3)}
    # signatures 0..5 with amount 2**n, assigned round robin over the keysets
    assert amounts[keyset_id(1).hex()]["source_amount"] == 2 ** 0 + 2 ** 3
    assert amounts[keyset_id(1).hex()]["target_count"] == 2
    assert all(entry["passed"] for entry in amounts.values())


def test_changed_row_is_reported(migrated):
    _execute(migrated.target, "UPDATE proof SET state = 'spent' WHERE state = 'pending'")

    report = validate_migration(migrated.source, migrated.target, MAIN_STEPS, MAIN_SCHEMA)

    proofs = next(e for e in report["contents"] if e["table"] == "proof")
    assert proofs["different"] == 2
    assert report["all_passed"] is False


def test_changed_amount_is_reported(migrated):
    _execute(migrated.target, "UPDATE blind_signature SET amount = amount + 1 WHERE keyset_id = ?",
             (keyset_id(2).hex(),))

    report = validate_migration(migrated.source, migrated.target, MAIN_STEPS, MAIN_SCHEMA)

    failed = [entry for entry in report["amounts"] if not entry["passed"]]
    assert [entry["keyset_id"] for entry in failed] == [keyset_id(2).hex()]
    assert report["all_passed"] is False


def test_missing_row_is_reported(migrated):
    _execute(migrated.target, "DELETE FROM melt_quote")

    report = validate_migration(migrated.source, migrated.target, MAIN_STEPS, MAIN_SCHEMA)

    counts = next(t for t in report["row_counts"]["tables"] if t["table"] == "melt_quote")
    assert (counts["source"], counts["target"], counts["passed"]) == (1, 0, False)
    melts = next(e for e in report["contents"] if e["table"] == "melt_quote")
    assert melts["missing"] == 1


def test_validate_auth_database(source, auth_source, paths):
    MigrationRunner(paths).run()
    report = validate_migration(paths.auth_source, paths.auth_target, AUTH_STEPS, AUTH_SCHEMA, database="auth")
    assert report["all_passed"] is True
    assert report["database"] == "auth"


def test_validate_without_target(source, paths):
    with pytest.raises(TargetNotFound):
        validate_migration(paths.source, paths.target, MAIN_STEPS, MAIN_SCHEMA)


def test_validate_rejects_other_source_version(migrated):
    write_store(migrated.source, main_records(version=9))

    with pytest.raises(SourceVersionMismatch) as exc:
        validate_migration(migrated.source, migrated.target, MAIN_STEPS, MAIN_SCHEMA)
    assert exc.value.found == 9


def test_validate_rejects_other_auth_version(source, auth_source, paths):
    MigrationRunner(paths).run()
    write_auth_store(paths.auth_source, auth_records(version=3))

    with pytest.raises(SourceVersionMismatch):
        validate_migration(paths.auth_source, paths.auth_target, AUTH_STEPS, AUTH_SCHEMA, database="auth")


def test_missing_melt_request_is_reported(migrated):
    _execute(migrated.target, "DELETE FROM melt_request")

    report = validate_migration(migrated.source, migrated.target, MAIN_STEPS, MAIN_SCHEMA)

    requests = next(e for e in report["contents"] if e["table"] == "melt_request")
    assert requests["missing"] == 1
    assert report["all_passed"] is False


def test_open_target_readonly(migrated):
    conn = open_target_readonly(migrated.target)
    try:
        with pytest.raises(sqlite3.OperationalError):
            conn.execute("DELETE FROM keyset")
    finally:
        conn.close()


def test_constraints(migrated):
    conn = open_target_readonly(migrated.target)
    try:
        constraints = get_target_constraints(conn, MAIN_SCHEMA)
    finally:
        conn.close()
    assert ("blind_signature", "keyset_id", "keyset", "id") in constraints["foreign_keys"]
    assert ("proof", "y") in constraints["primary_keys"]
    assert ("proof", "proof_state_index") in constraints["indexes"]


def test_verify_counts(paths):
    with TargetWriter.initialize(paths.target, MAIN_SCHEMA) as writer:
        stats = [
            TableStats("main", "keyset", "keysets", read=0),
            TableStats("main", "proof", "proofs", read=3, skipped=1),
        ]
        mismatches = verify_counts(writer, stats)

    assert [m.table for m in mismatches] == ["proof"]
    assert mismatches[0].expected == 2
    assert mismatches[0].actual == 0
    assert stats[1].status == "mismatch"
    assert stats[0].status == "pending"

import json
import sqlite3
from types import SimpleNamespace

import pytest

from lmdb2sqlite import REPORT_FILE_NAME, codec
from lmdb2sqlite.cli import apply_overrides, main, parse_args
from lmdb2sqlite.config import MigrationConfig
from tests.factories import (
    keyset_id, main_records, make_proof, proof_state_offset, with_byte, write_store,
)


def _run(work_dir, *flags):
    return main(["--work-dir", str(work_dir), *flags])


def test_migration_exit_code(source, work_dir, paths):
    assert _run(work_dir) == 0
    assert paths.target.exists()
    assert (work_dir / REPORT_FILE_NAME).exists()


def test_second_run_exit_code(source, work_dir):
    assert _run(work_dir) == 0
    assert _run(work_dir) == 2


def test_no_report(source, work_dir):
    assert _run(work_dir, "--no-report") == 0
    assert not (work_dir / REPORT_FILE_NAME).exists()


def test_missing_source_exit_code(work_dir):
    assert _run(work_dir) == 2


def test_work_dir_is_created(tmp_path):
    work_dir = tmp_path / "new" / "mintd"
    assert _run(work_dir) == 2
    assert work_dir.is_dir()


def test_dry_run(source, work_dir, paths):
    assert _run(work_dir, "--dry-run") == 0
    assert not paths.target.exists()


def test_verify_only(source, work_dir, paths):
    assert _run(work_dir) == 0
    assert _run(work_dir, "--verify-only") == 0

    conn = sqlite3.connect(str(paths.target))
    conn.execute("DELETE FROM mint_quote")
    conn.commit()
    conn.close()
    assert _run(work_dir, "--verify-only") == 1


def test_verify_only_without_target(source, work_dir):
    assert _run(work_dir, "--verify-only") == 2


def test_verify_only_other_source_version(source, work_dir, paths):
    assert _run(work_dir) == 0
    write_store(paths.source, main_records(version=9))
    assert _run(work_dir, "--verify-only") == 2


def test_verify_only_report_error_keeps_exit_code(source, work_dir):
    assert _run(work_dir, "--no-report") == 0
    # a directory where the report file should go makes writing it fail
    (work_dir / REPORT_FILE_NAME).mkdir()
    assert _run(work_dir, "--verify-only") == 0


def test_dry_run_and_verify_only_are_exclusive(work_dir):
    with pytest.raises(SystemExit):
        parse_args(["--dry-run", "--verify-only"])


# ── Policies from flags and config ──

@pytest.fixture
def corrupt_source(paths, records):
    key, value = records[codec.PROOFS_TABLE][0]
    offset = proof_state_offset(make_proof(0, keyset_id(1)))
    records[codec.PROOFS_TABLE][0] = (key, with_byte(value, offset, 7))
    return write_store(paths.source, records)


def test_decode_error_exit_code(corrupt_source, work_dir):
    assert _run(work_dir) == 1


def test_decode_error_skip_flag(corrupt_source, work_dir):
    assert _run(work_dir, "--on-decode-error", "skip") == 0


def test_decode_error_skip_from_config(corrupt_source, work_dir):
    (work_dir / "migration_config.json").write_text(json.dumps({"on_decode_error": "skip"}))
    assert _run(work_dir) == 0


def test_invalid_config_exit_code(source, work_dir, paths):
    (work_dir / "migration_config.json").write_text(json.dumps({"on_decode_error": "maybe"}))
    assert _run(work_dir) == 2
    assert not paths.target.exists()


def test_explicit_config_path(source, work_dir, tmp_path):
    config = tmp_path / "custom.json"
    config.write_text(json.dumps({"report": False}))
    assert _run(work_dir, "--config", str(config)) == 0
    assert not (work_dir / REPORT_FILE_NAME).exists()


def test_init_writes_config(work_dir):
    assert _run(work_dir, "--init") == 0
    assert json.loads((work_dir / "migration_config.json").read_text())["on_decode_error"] == "abort"


def test_flags_override_config():
    args = SimpleNamespace(
        on_decode_error="skip", on_missing_keyset=None, auth_non_fatal=True, no_report=True,
    )
    config = apply_overrides(MigrationConfig(), args)
    assert config.on_decode_error == "skip"
    assert config.on_missing_keyset == "abort"
    assert config.auth_failure_fatal is False
    assert config.report is False

import json

import pytest

from lmdb2sqlite import DEFAULT_CONFIG
from lmdb2sqlite.config import MigrationConfig, init_config, load_config, parse_config
from lmdb2sqlite.errors import ConfigError


def test_missing_file_gives_defaults(tmp_path):
    config = load_config(tmp_path / "migration_config.json")
    assert config.to_dict() == DEFAULT_CONFIG


def test_load_overrides(tmp_path):
    path = tmp_path / "migration_config.json"
    path.write_text(json.dumps({"on_decode_error": "skip", "report": False}))
    config = load_config(path)
    assert config.on_decode_error == "skip"
    assert config.report is False
    assert config.on_missing_keyset == "abort"
    assert config.auth_failure_fatal is True


def test_invalid_json(tmp_path):
    path = tmp_path / "migration_config.json"
    path.write_text("{not json")
    with pytest.raises(ConfigError) as exc:
        load_config(path)
    assert "invalid JSON" in exc.value.issues[0]


def test_not_an_object():
    with pytest.raises(ConfigError):
        parse_config(["abort"])


def test_every_issue_is_collected():
    with pytest.raises(ConfigError) as exc:
        parse_config({"on_decode_error": "ignore", "report": "yes", "colour": 1})
    assert len(exc.value.issues) == 3


def test_default_config_object():
    assert MigrationConfig().to_dict() == DEFAULT_CONFIG


# ── --init ──

def test_init_config_writes_defaults(tmp_path):
    path = tmp_path / "mintd" / "migration_config.json"
    init_config(path)
    assert json.loads(path.read_text()) == DEFAULT_CONFIG


def test_init_config_keeps_existing_file(tmp_path, monkeypatch):
    path = tmp_path / "migration_config.json"
    path.write_text('{"report": false}')
    monkeypatch.setattr("lmdb2sqlite.config.Confirm.ask", lambda *args, **kwargs: False)
    init_config(path)
    assert path.read_text() == '{"report": false}'


def test_init_config_overwrites_when_confirmed(tmp_path, monkeypatch):
    path = tmp_path / "migration_config.json"
    path.write_text('{"report": false}')
    monkeypatch.setattr("lmdb2sqlite.config.Confirm.ask", lambda *args, **kwargs: True)
    init_config(path)
    assert json.loads(path.read_text()) == DEFAULT_CONFIG

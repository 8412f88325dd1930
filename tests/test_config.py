import json

from vivarium.config.loader import (
    camel_to_snake,
    convert_keys,
    load_config,
    save_config,
    snake_to_camel,
)
from vivarium.config.schema import Config


def test_defaults_match_documented_values():
    config = Config()

    assert config.sessions.idle_timeout_minutes == 10
    assert config.sessions.sweep_interval_s == 60
    assert config.sessions.teardown_history == 100
    assert config.environment.exec_timeout_s == 60


def test_missing_file_returns_defaults(tmp_path):
    config = load_config(tmp_path / "absent.json")
    assert config.sessions.idle_timeout_minutes == 10


def test_camel_case_file_is_loaded(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "sessions": {"idleTimeoutMinutes": 1, "sweepIntervalS": 5},
        "environment": {"execTimeoutS": 3},
    }))

    config = load_config(path)

    assert config.sessions.idle_timeout_minutes == 1
    assert config.sessions.sweep_interval_s == 5
    assert config.environment.exec_timeout_s == 3


def test_corrupt_file_falls_back_to_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json")

    assert load_config(path).sessions.idle_timeout_minutes == 10


def test_invalid_values_fall_back_to_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"sessions": {"idleTimeoutMinutes": -5}}))

    assert load_config(path).sessions.idle_timeout_minutes == 10


def test_save_writes_camel_case_and_reloads(tmp_path):
    path = tmp_path / "nested" / "config.json"
    config = Config()
    config.sessions.idle_timeout_minutes = 2

    save_config(config, path)
    on_disk = json.loads(path.read_text())

    assert on_disk["sessions"]["idleTimeoutMinutes"] == 2
    assert "workdirRoot" in on_disk["environment"]
    assert load_config(path).sessions.idle_timeout_minutes == 2


def test_environment_variables_override_defaults(monkeypatch):
    monkeypatch.setenv("VIVARIUM_SESSIONS__SWEEP_INTERVAL_S", "7")

    assert Config().sessions.sweep_interval_s == 7


def test_key_conversion_helpers():
    assert camel_to_snake("lastAccessedAtMs") == "last_accessed_at_ms"
    assert snake_to_camel("max_output_chars") == "maxOutputChars"
    assert convert_keys({"outer": [{"innerKey": 1}]}) == {"outer": [{"inner_key": 1}]}

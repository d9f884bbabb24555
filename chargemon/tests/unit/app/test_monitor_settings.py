import json

import pytest

from chargemon.app.settings import MonitorSettings, load_settings, save_settings


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path, monkeypatch):
    monkeypatch.setenv("CHARGEMON_HOME", str(tmp_path / "home"))
    monkeypatch.delenv("CHARGEMON_SETTINGS", raising=False)


def test_defaults_match_hub_firmware(tmp_path):
    settings = MonitorSettings()

    assert settings.fallback_url == "http://192.168.32.2/metrics"
    assert settings.refresh_interval_ms == 500
    assert settings.http_timeout_s == 5
    assert settings.error_threshold == 5
    assert settings.scan_shards == 3
    assert settings.data_dir == str(tmp_path / "home")


def test_apply_dict_coerces_and_clamps():
    settings = MonitorSettings().apply_dict(
        {
            "refresh_interval_ms": "100",
            "scan_stop_on_first": "yes",
            "probe_port": 8080.0,
            "fallback_url": " http://10.0.0.2/metrics ",
        }
    )

    assert settings.refresh_interval_ms == 500
    assert settings.scan_stop_on_first is True
    assert settings.probe_port == 8080
    assert settings.fallback_url == "http://10.0.0.2/metrics"


@pytest.mark.parametrize(
    "payload",
    [
        {"unknown_key": 1},
        {"scan_shards": 0},
        {"error_threshold": True},
        {"http_timeout_s": "soon"},
        {"cooldown_ms": -1},
        {"fallback_url": "192.168.1.2"},
        ["not", "a", "mapping"],
    ],
)
def test_apply_dict_rejects_invalid_payloads(payload):
    with pytest.raises(ValueError):
        MonitorSettings().apply_dict(payload)


def test_settings_round_trip(tmp_path):
    path = tmp_path / "cfg" / "settings.json"
    original = MonitorSettings().apply_dict({"refresh_interval_ms": 750, "debug_logging": True})

    save_settings(original, path)
    loaded = load_settings(path)

    assert loaded == original
    with path.open("r", encoding="utf-8") as fh:
        assert json.load(fh)["refresh_interval_ms"] == 750


def test_missing_file_gives_defaults_and_bad_json_raises(tmp_path):
    assert load_settings(tmp_path / "absent.json") == MonitorSettings()

    broken = tmp_path / "broken.json"
    broken.write_text("{", encoding="utf-8")
    with pytest.raises(ValueError):
        load_settings(broken)

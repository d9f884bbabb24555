from __future__ import annotations

import io

import pytest

from chargemon.adapters.address_book import AddressBook
from chargemon.app import main as app_main
from chargemon.app.console import ConsoleDisplay
from chargemon.app.settings import MonitorSettings
from chargemon.domain.metrics_parser import parse_metrics
from chargemon.domain.telemetry import ConnectivityState, PortStateModel


def test_console_line_lists_every_port_and_total() -> None:
    model = PortStateModel()
    parse_metrics('ionbridge_port_current{id="0"} 1500\nionbridge_port_voltage{id="0"} 5000\n', model)
    stream = io.StringIO()

    ConsoleDisplay(stream).render(model.snapshot(), ConnectivityState.CONNECTED)

    line = stream.getvalue()
    assert line.startswith("[ok] ")
    assert "A: 7.50W/  5%(idle)" in line
    assert "C4: 0.00W/  0%" in line
    assert line.rstrip().endswith("Total:  7.50W/  4%")


def test_build_session_wires_stored_address(tmp_path) -> None:
    settings = MonitorSettings(data_dir=str(tmp_path), refresh_interval_ms=800, error_threshold=3)
    book = AddressBook(tmp_path)
    book.set("172.16.0.9")

    session = app_main.build_session(settings, book=book)

    assert session.start() == "http://172.16.0.9/metrics"
    assert session.poller.cfg.interval_ms == 800
    assert session.poller.cfg.error_threshold == 3
    assert session.link_up is False
    session.update_link(True, True, "172.16.0.20")
    assert session.link_up is True


def test_scan_command_rejects_bad_prefix(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CHARGEMON_HOME", str(tmp_path))
    monkeypatch.delenv("CHARGEMON_SETTINGS", raising=False)

    assert app_main.main(["--local-ip", "10.0.0.2", "scan", "10.0"]) == 2


def test_invalid_settings_file_exits_with_error(tmp_path) -> None:
    path = tmp_path / "settings.json"
    path.write_text('{"no_such_option": 1}', encoding="utf-8")

    assert app_main.main(["--settings", str(path), "--once"]) == 2

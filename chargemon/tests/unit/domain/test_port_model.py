from __future__ import annotations

import pytest

from chargemon.domain.telemetry import (
    MAX_PORTS,
    PORT_NAMES,
    PortStateModel,
    PortView,
    voltage_band,
)


def _view(power_w: float, voltage_mv: int = 5000) -> PortView:
    return PortView(id=0, name="A", state=1, fc_protocol=0, current_ma=0, voltage_mv=voltage_mv, power_w=power_w)


def test_model_starts_with_named_zeroed_ports() -> None:
    snap = PortStateModel().snapshot()

    assert len(snap.ports) == MAX_PORTS
    assert tuple(p.name for p in snap.ports) == PORT_NAMES
    assert snap.total_w == 0
    assert snap.updated_at is None


def test_set_field_rejects_ids_outside_port_range() -> None:
    model = PortStateModel()

    assert model.set_field(0, "current_ma", 100) is True
    assert model.set_field(MAX_PORTS, "current_ma", 100) is False
    assert model.set_field(-1, "current_ma", 100) is False


def test_reset_zeroes_records_and_total() -> None:
    model = PortStateModel(clock=lambda: 5.0)
    model.set_field(2, "current_ma", 3000)
    model.set_field(2, "voltage_mv", 9000)
    model.recompute()
    assert model.snapshot().total_w == pytest.approx(27.0)

    model.reset()

    snap = model.snapshot()
    assert snap.total_w == 0
    assert all(p.current_ma == 0 and p.power_w == 0 for p in snap.ports)
    assert snap.updated_at is None


def test_snapshot_is_detached_from_later_writes() -> None:
    model = PortStateModel()
    snap = model.snapshot()

    model.set_field(0, "current_ma", 500)

    assert snap.ports[0].current_ma == 0
    with pytest.raises(KeyError):
        snap.port("C9")


@pytest.mark.parametrize(
    "power,expected",
    [(0.0, 0), (0.1, 1), (70.0, 50), (140.0, 100), (500.0, 100)],
)
def test_load_percent_shows_trickle_and_caps(power: float, expected: int) -> None:
    assert _view(power).load_percent(140) == expected


@pytest.mark.parametrize(
    "mv,band",
    [(0, "idle"), (5000, "idle"), (9000, "5v-9v"), (12000, "12v"), (15000, "15v"), (20000, "20v"), (21500, "pps-high")],
)
def test_voltage_band_thresholds(mv: int, band: str) -> None:
    assert voltage_band(mv) == band
    assert _view(1.0, mv).voltage_band == band

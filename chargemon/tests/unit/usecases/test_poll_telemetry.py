from __future__ import annotations

import logging
from typing import List, Sequence, Union

import pytest

from chargemon.adapters.api_errors import FetchHTTPError, FetchTransportError
from chargemon.domain.telemetry import ConnectivityState, PortStateModel
from chargemon.usecases.poll_telemetry import (
    PollerConfig,
    PollerState,
    PollOutcome,
    TelemetryPoller,
)

BODY = 'ionbridge_port_current{id="0"} 1500\nionbridge_port_voltage{id="0"} 5000\n'

Step = Union[str, Exception]


class _Clock:
    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class _SessionStub:
    def __init__(self, script: List[Step], urls: List[str]) -> None:
        self._script = script
        self._urls = urls
        self.closed = False

    def fetch(self, url: str) -> str:
        self._urls.append(url)
        step = self._script.pop(0)
        if isinstance(step, Exception):
            raise step
        return step

    def close(self) -> None:
        self.closed = True


class _Factory:
    """Hands out sessions that share one scripted sequence of results."""

    def __init__(self, script: Sequence[Step]) -> None:
        self.script = list(script)
        self.urls: List[str] = []
        self.sessions: List[_SessionStub] = []

    def __call__(self) -> _SessionStub:
        session = _SessionStub(self.script, self.urls)
        self.sessions.append(session)
        return session


def _http_error(status: int = 500) -> FetchHTTPError:
    return FetchHTTPError(f"HTTP {status}", status=status)


def _poller(factory: _Factory, clock: _Clock, *, link=lambda: True, **cfg) -> TelemetryPoller:
    return TelemetryPoller(
        factory,
        PortStateModel(),
        PollerConfig(**cfg),
        url="http://192.168.1.19/metrics",
        link_up=link,
        clock=clock,
    )


def test_success_parses_body_into_model() -> None:
    factory = _Factory([BODY])
    poller = _poller(factory, _Clock())

    assert poller.poll() is PollOutcome.SUCCESS

    assert poller.state is PollerState.SUCCESS
    assert poller.model.snapshot().total_w == pytest.approx(7.5)
    assert poller.connectivity is ConnectivityState.CONNECTED
    assert factory.urls == ["http://192.168.1.19/metrics"]


def test_triggers_inside_interval_make_one_request() -> None:
    clock = _Clock()
    factory = _Factory([BODY, BODY])
    poller = _poller(factory, clock, interval_ms=1000)

    first = poller.poll()
    clock.advance(0.4)
    second = poller.poll()

    assert (first, second) == (PollOutcome.SUCCESS, PollOutcome.SKIPPED_INTERVAL)
    assert len(factory.urls) == 1

    clock.advance(0.6)
    assert poller.poll() is PollOutcome.SUCCESS
    assert len(factory.urls) == 2


def test_interval_is_clamped_to_floor() -> None:
    assert PollerConfig(interval_ms=50).interval_ms == 500


def test_five_http_errors_rebuild_session_before_sixth_attempt() -> None:
    clock = _Clock()
    factory = _Factory([_http_error() for _ in range(5)] + [BODY])
    poller = _poller(factory, clock, error_threshold=5, cooldown_ms=1000)

    outcomes = []
    for _ in range(5):
        outcomes.append(poller.poll())
        clock.advance(2.0)

    assert outcomes == [PollOutcome.HTTP_ERROR] * 5
    assert len(factory.sessions) == 1
    assert factory.sessions[0].closed is True
    assert poller.rebuilds == 1
    assert poller.consecutive_errors == 0

    assert poller.poll() is PollOutcome.SUCCESS
    assert len(factory.sessions) == 2
    assert factory.sessions[1].closed is False


def test_error_sets_data_error_and_cooldown_suppresses_next_attempt() -> None:
    clock = _Clock()
    factory = _Factory([FetchTransportError("Timeout contacting hub"), BODY])
    poller = _poller(factory, clock, interval_ms=500, cooldown_ms=1500)

    assert poller.poll() is PollOutcome.TRANSPORT_ERROR
    assert poller.connectivity is ConnectivityState.DATA_ERROR
    assert poller.has_error is True

    clock.advance(0.6)
    assert poller.poll() is PollOutcome.SKIPPED_COOLDOWN
    assert poller.poll(force=True) is PollOutcome.SKIPPED_COOLDOWN

    clock.advance(1.0)
    assert poller.poll() is PollOutcome.SUCCESS
    assert poller.has_error is False
    assert poller.connectivity is ConnectivityState.CONNECTED


def test_link_down_skips_fetch_and_reports_disconnected() -> None:
    link = {"up": False}
    factory = _Factory([BODY])
    poller = _poller(factory, _Clock(), link=lambda: link["up"])

    assert poller.poll() is PollOutcome.SKIPPED_LINK_DOWN
    assert poller.connectivity is ConnectivityState.DISCONNECTED
    assert factory.urls == []

    link["up"] = True
    assert poller.connectivity is ConnectivityState.CONNECTING
    assert poller.poll() is PollOutcome.SUCCESS


def test_set_url_discards_session_and_force_bypasses_interval() -> None:
    clock = _Clock()
    factory = _Factory([BODY, BODY])
    poller = _poller(factory, clock)
    poller.poll()

    changed = poller.set_url("http://192.168.1.20/metrics")

    assert changed is True
    assert factory.sessions[0].closed is True
    assert poller.set_url("http://192.168.1.20/metrics") is False
    assert poller.poll() is PollOutcome.SKIPPED_INTERVAL
    assert poller.poll(force=True) is PollOutcome.SUCCESS
    assert factory.urls[-1] == "http://192.168.1.20/metrics"
    assert len(factory.sessions) == 2


def test_empty_url_is_not_fetched() -> None:
    factory = _Factory([BODY])
    poller = TelemetryPoller(factory, PortStateModel(), clock=_Clock())

    assert poller.poll() is PollOutcome.SKIPPED_NO_URL
    assert factory.sessions == []


def test_stale_loop_warning_is_rate_limited(caplog: pytest.LogCaptureFixture) -> None:
    clock = _Clock()
    poller = _poller(_Factory([BODY]), clock, interval_ms=500)
    poller.poll()

    clock.advance(0.9)
    assert poller.check_stale() is False

    caplog.set_level(logging.WARNING, logger="chargemon.usecases.poll_telemetry")
    clock.advance(0.2)
    assert poller.check_stale() is True
    clock.advance(0.3)
    assert poller.check_stale() is True

    warnings = [r for r in caplog.records if "No metrics fetch" in r.getMessage()]
    assert len(warnings) == 1

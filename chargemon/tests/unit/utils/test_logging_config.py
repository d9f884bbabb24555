import logging

import pytest

from chargemon.utils import logging as logging_utils


@pytest.fixture(autouse=True)
def _restore_root_level(monkeypatch):
    monkeypatch.delenv(logging_utils.LEVEL_ENV_VAR, raising=False)
    monkeypatch.delenv(logging_utils.DEBUG_ENV_VAR, raising=False)
    root = logging.getLogger()
    level = root.level
    yield
    root.setLevel(level)


def test_configure_root_uses_default_level():
    assert logging_utils.configure_root(logging.WARNING) == logging.WARNING
    assert logging.getLogger().level == logging.WARNING
    assert logging.getLogger("urllib3").level == logging.WARNING


def test_env_level_overrides_default(monkeypatch):
    monkeypatch.setenv(logging_utils.LEVEL_ENV_VAR, "error")

    assert logging_utils.configure_root("INFO") == logging.ERROR


def test_debug_flag_forces_debug(monkeypatch):
    monkeypatch.setenv(logging_utils.DEBUG_ENV_VAR, "yes")

    assert logging_utils.apply_preferences(False) == logging.DEBUG
    assert logging.getLogger("urllib3").level == logging.DEBUG


def test_preferences_apply_without_env():
    assert logging_utils.apply_preferences(True) == logging.DEBUG
    assert logging_utils.apply_preferences(False) == logging.INFO

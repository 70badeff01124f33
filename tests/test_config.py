"""
Unit tests for environment helpers and the filtering switch.
"""

import pytest

from datafilter import config
from datafilter.config import (
    get_env,
    is_filtering_enabled,
    reset_filtering_switches,
    set_filtering_enabled,
)


def test_get_env_ok(monkeypatch):
    monkeypatch.setenv("X", "123")
    assert get_env("X") == "123"


def test_get_env_missing_exits(monkeypatch, capsys):
    monkeypatch.delenv("MISSING_ENV", raising=False)
    with pytest.raises(SystemExit) as e:
        get_env("MISSING_ENV")
    assert e.value.code == 1
    err = capsys.readouterr().err
    assert "ERROR: env var MISSING_ENV is not set" in err


def test_filtering_enabled_by_default():
    assert is_filtering_enabled("patient")
    assert is_filtering_enabled("anything-else")


def test_toggle_is_per_entity_type_and_case_insensitive():
    set_filtering_enabled("Patient", False)
    assert not is_filtering_enabled("patient")
    assert is_filtering_enabled("visit")
    set_filtering_enabled("patient", True)
    assert is_filtering_enabled("PATIENT")


def test_disabled_types_from_environment(monkeypatch):
    monkeypatch.setenv("DATAFILTER_DISABLED_TYPES", "patient, obs ,")
    reset_filtering_switches()
    assert not is_filtering_enabled("patient")
    assert not is_filtering_enabled("obs")
    assert is_filtering_enabled("visit")


def test_parse_disabled_ignores_blanks():
    assert config._parse_disabled(None) == {}
    assert config._parse_disabled(" , ") == {}

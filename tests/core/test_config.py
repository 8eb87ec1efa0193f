"""Tests for Settings bounds."""

import pytest
from pydantic import ValidationError

from orderflow.core.config import Settings

pytestmark = pytest.mark.unit


def test_min_reason_length_defaults_to_ten():
    assert Settings(_env_file=None).min_reason_length == 10


def test_min_reason_length_may_be_raised():
    assert Settings(_env_file=None, min_reason_length=25).min_reason_length == 25


@pytest.mark.parametrize("value", [0, 1, 9])
def test_min_reason_length_cannot_drop_below_ten(value):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, min_reason_length=value)


def test_min_reason_length_from_environment(monkeypatch):
    monkeypatch.setenv("MIN_REASON_LENGTH", "1")
    with pytest.raises(ValidationError):
        Settings(_env_file=None)

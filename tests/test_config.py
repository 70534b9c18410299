from __future__ import annotations

import pytest
from pydantic import ValidationError

from syra_issuer.config import Settings


def test_settings_defaults(monkeypatch):
    monkeypatch.delenv("SYRA_MODE", raising=False)
    settings = Settings(_env_file=None)

    assert settings.MODE == "standalone"
    assert settings.PORT == 9000
    assert settings.DKG_SESSION_ID == "syra-session-001"
    assert settings.SUBJECT_ENCODING == "hash"
    assert settings.DKG_SHARED_SECRET is None
    assert settings.DKG_SEND_RETRIES == 3


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("SYRA_MODE", "threshold")
    monkeypatch.setenv("SYRA_PARTICIPANT_INDEX", "2")
    monkeypatch.setenv("SYRA_THRESHOLD_N", "3")
    monkeypatch.setenv("SYRA_THRESHOLD_T", "2")
    monkeypatch.setenv("SYRA_PEERS", '{"1": "http://issuer-1:9000", "3": "http://issuer-3:9000"}')
    settings = Settings(_env_file=None)

    assert settings.MODE == "threshold"
    assert settings.PEERS == {1: "http://issuer-1:9000", 3: "http://issuer-3:9000"}


def test_settings_reject_bad_threshold():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, THRESHOLD_N=3, THRESHOLD_T=4)
    with pytest.raises(ValidationError):
        Settings(_env_file=None, THRESHOLD_N=3, THRESHOLD_T=2, PARTICIPANT_INDEX=4)
    with pytest.raises(ValidationError):
        Settings(_env_file=None, MODE="threshold", THRESHOLD_N=3, THRESHOLD_T=2, PEERS={1: "http://self"})


def test_settings_reject_zero_send_retries():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, DKG_SEND_RETRIES=0)

import json
import logging

import pytest
from pydantic import ValidationError

from trame_backend.config import Settings
from trame_backend.logging_config import JSONFormatter


def test_defaults_from_empty_environment(monkeypatch):
    for name in ("DATABASE_URL", "PORT", "DEBOUNCE_SECONDS", "ALLOWED_ORIGIN"):
        monkeypatch.delenv(name, raising=False)
    settings = Settings.from_env()
    assert settings.database_url == "sqlite:///trame.db"
    assert settings.port == 3000
    assert settings.debounce_seconds == 0.5
    assert settings.allowed_origins == ["*"]

def test_values_from_environment(monkeypatch):
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("DEBOUNCE_SECONDS", "1.5")
    monkeypatch.setenv("ALLOWED_ORIGIN", "https://a.example, https://b.example")
    settings = Settings.from_env()
    assert settings.port == 8080
    assert settings.debounce_seconds == 1.5
    assert settings.allowed_origins == ["https://a.example", "https://b.example"]

def test_invalid_number_is_rejected(monkeypatch):
    monkeypatch.setenv("PORT", "eighty")
    with pytest.raises(ValueError):
        Settings.from_env()

def test_non_positive_window_is_rejected(monkeypatch):
    monkeypatch.setenv("DEBOUNCE_SECONDS", "0")
    with pytest.raises(ValueError):
        Settings.from_env()

def test_explicit_values_override_environment(monkeypatch):
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("MAX_NOTE_LENGTH", "10")
    settings = Settings(port=1234)
    assert settings.port == 1234
    assert settings.max_note_length == 10

def test_validation_error_names_the_field(monkeypatch):
    monkeypatch.setenv("SESSION_TTL_SECONDS", "-5")
    with pytest.raises(ValidationError) as exc:
        Settings.from_env()
    assert exc.value.errors()[0]["loc"] == ("session_ttl_seconds",)

def test_json_formatter_includes_extra_fields():
    record = logging.LogRecord("trame", logging.INFO, __file__, 1, "flushed", None, None)
    record.owner_id = "owner-1"
    record.seq = 7
    log = json.loads(JSONFormatter().format(record))
    assert log["message"] == "flushed"
    assert log["owner_id"] == "owner-1"
    assert log["seq"] == 7
    assert "account_id" not in log

"""Unit tests for settings loading."""

import pytest
from pydantic import ValidationError

from latchkey.settings import Settings, get_settings


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("STORE_BACKEND", raising=False)
        settings = Settings(_env_file=None)
        assert settings.store_backend == "memory"
        assert settings.challenge_bytes == 32
        assert settings.allowed_origins == "*"
        assert settings.cors_max_age == 86400
        assert settings.cors_allow_methods == "GET,POST,OPTIONS"
        assert settings.cors_allow_headers == "Content-Type,X-Correlation-ID"
        assert settings.webauthn_origin == ""

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("WEBAUTHN_RP_ID", "auth.example.com")
        monkeypatch.setenv("STORE_BACKEND", "database")
        settings = Settings(_env_file=None)
        assert settings.webauthn_rp_id == "auth.example.com"
        assert settings.store_backend == "database"

    def test_challenge_bytes_floor(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, challenge_bytes=16)

    def test_store_key_prefix_length_capped(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, store_key_prefix="p" * 65)

    def test_unknown_backend_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, store_backend="redis")

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

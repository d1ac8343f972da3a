"""
Tests for postgen/config.py - pydantic-settings defaults and validation.
"""
import pytest
from pydantic import ValidationError as PydanticValidationError

from postgen.config import Settings, get_settings


class TestSettings:
    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.session_backend == "memory"
        assert settings.session_ttl_seconds == 1800
        assert settings.similarity_threshold == 0.8
        assert settings.similarity_prefilter_factor == 0.8
        assert settings.similarity_limit == 3
        assert settings.embedding_dim == 1536

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("SESSION_TTL_SECONDS", "60")
        monkeypatch.setenv("SESSION_BACKEND", "redis")
        settings = Settings(_env_file=None)
        assert settings.session_ttl_seconds == 60
        assert settings.session_backend == "redis"

    def test_unknown_backend_rejected(self):
        with pytest.raises(PydanticValidationError):
            Settings(_env_file=None, session_backend="memcached")

    def test_threshold_must_be_fraction(self):
        with pytest.raises(PydanticValidationError):
            Settings(_env_file=None, similarity_threshold=1.5)

    def test_ttl_must_be_positive(self):
        with pytest.raises(PydanticValidationError):
            Settings(_env_file=None, session_ttl_seconds=0)

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

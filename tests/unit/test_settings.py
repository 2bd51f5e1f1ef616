"""
Tests for application settings.
"""

import pytest
from pydantic import ValidationError

from localdirectory.config.settings import Settings


def _settings(**overrides) -> Settings:
    values = {
        "supabase_url": "https://example.supabase.co",
        "supabase_key": "key",
        "_env_file": None,
    }
    values.update(overrides)
    return Settings(**values)


class TestSettings:
    """Tests for Settings defaults and production validation."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("STORE_BACKEND", raising=False)
        monkeypatch.delenv("SCHEDULER_ENABLED", raising=False)

        settings = _settings()

        assert settings.store_backend == "supabase"
        assert settings.name_match_threshold == 0.85
        assert settings.content_match_threshold == 0.9
        assert settings.max_concurrent_syncs == 3
        assert settings.sync_batch_size_limit == 20
        assert settings.sync_max_skip == 100
        assert settings.scheduler_enabled is True
        assert settings.is_development

    def test_environment_variables(self, monkeypatch):
        monkeypatch.setenv("MAX_CONCURRENT_SYNCS", "5")
        monkeypatch.setenv("GEOSCRAPER_API_TOKEN", "abc")

        settings = _settings()

        assert settings.max_concurrent_syncs == 5
        assert settings.geoscraper_api_token.get_secret_value() == "abc"

    def test_threshold_range(self):
        with pytest.raises(ValidationError):
            _settings(name_match_threshold=1.5)

    def test_production_rejects_insecure_settings(self):
        with pytest.raises(ValidationError, match="api_key_enabled must be True"):
            _settings(app_env="production", debug=False, store_backend="supabase")

    def test_production_rejects_memory_store(self):
        with pytest.raises(ValidationError, match="store_backend cannot be 'memory'"):
            _settings(
                app_env="production",
                debug=False,
                api_key_enabled=True,
                api_key="secret",
                store_backend="memory",
                cors_allowed_origins=["https://directory.example.com"],
            )

    def test_valid_production(self):
        settings = _settings(
            app_env="production",
            debug=False,
            api_key_enabled=True,
            api_key="secret",
            store_backend="supabase",
            cors_allowed_origins=["https://directory.example.com"],
        )

        assert settings.is_production

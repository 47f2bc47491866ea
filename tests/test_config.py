"""Tests for EasyCars settings validation and environment URL selection."""

import pytest

from easycars_sync.config import Settings


def _settings(**overrides) -> Settings:
    values = {"ENCRYPTION_KEY": "k", "_env_file": None}
    values.update(overrides)
    return Settings(**values)


class TestApiUrlFor:

    def test_production_is_case_insensitive(self):
        settings = _settings(EASYCARS_PRODUCTION_API_URL="https://api.easycars.com/api/")
        assert settings.api_url_for(" PRODUCTION ") == "https://api.easycars.com/api"

    @pytest.mark.parametrize("environment", ["Test", "test", "", None, "Staging"])
    def test_everything_else_uses_test(self, environment):
        settings = _settings(EASYCARS_TEST_API_URL="https://test.easycars.com/api")
        assert settings.api_url_for(environment) == "https://test.easycars.com/api"


class TestValidateEasyCars:

    def test_defaults_are_valid(self):
        _settings().validate_easycars()

    @pytest.mark.parametrize(
        "overrides",
        [
            {"EASYCARS_TEST_API_URL": "not-a-url"},
            {"EASYCARS_PRODUCTION_API_URL": ""},
            {"EASYCARS_TIMEOUT_SECONDS": 0},
            {"EASYCARS_RETRY_ATTEMPTS": -1},
            {"EASYCARS_RETRY_DELAY_MS": -10},
            {"EASYCARS_TOKEN_CACHE_SECONDS": 0},
        ],
    )
    def test_invalid_values_rejected(self, overrides):
        with pytest.raises(ValueError):
            _settings(**overrides).validate_easycars()

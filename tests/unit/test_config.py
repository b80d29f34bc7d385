"""
Unit tests for service configuration.
"""
import pytest

from shared.config import (
    PLACEHOLDER_API_KEY,
    ConfigurationError,
    LuminaConfig,
    get_config,
    reset_config,
)


class TestLuminaConfig:
    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-env")
        monkeypatch.setenv("LUMINA_RATE_LIMIT_MAX_REQUESTS", "5")
        monkeypatch.setenv("REDIS_URL", "redis://cache:6379/0")

        config = LuminaConfig()

        assert config.anthropic_api_key == "sk-ant-env"
        assert config.rate_limit_max_requests == 5
        assert config.uses_redis

    def test_defaults(self, monkeypatch):
        for var in ("ANTHROPIC_API_KEY", "REDIS_URL", "LUMINA_COMMAND_TIMEOUT_MS", "LUMINA_SCHEDULE_MAX_TOKENS"):
            monkeypatch.delenv(var, raising=False)

        config = LuminaConfig()

        assert config.command_timeout_ms == 25000
        assert config.schedule_max_tokens == 2048
        assert not config.uses_redis
        assert not config.has_api_key

    @pytest.mark.parametrize("key", ["", PLACEHOLDER_API_KEY])
    def test_missing_or_placeholder_key(self, key):
        config = LuminaConfig(anthropic_api_key=key)

        assert not config.has_api_key
        assert any("ANTHROPIC_API_KEY" in e for e in config.validate())
        with pytest.raises(ConfigurationError):
            config.require_api_key()

    def test_invalid_limits(self):
        errors = LuminaConfig(anthropic_api_key="k", rate_limit_max_requests=0, redis_url="redis://x").validate()
        assert errors == ["LUMINA_RATE_LIMIT_MAX_REQUESTS must be at least 1"]

    def test_validate_or_exit(self):
        with pytest.raises(SystemExit):
            LuminaConfig(anthropic_api_key="").validate_or_exit()

    def test_global_instance_is_cached(self):
        reset_config()
        assert get_config() is get_config()
        reset_config()

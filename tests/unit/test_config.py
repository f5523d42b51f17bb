"""Unit tests for configuration loading and validation."""

from dataclasses import replace

import pytest

from prisma_airs_mcp.config import (
    AirsConfig,
    CacheConfig,
    RateLimitConfig,
    ServerConfig,
    validate_config,
)
from prisma_airs_mcp.config.settings import DEFAULT_API_URL


@pytest.fixture
def clean_env(monkeypatch):
    for name in (
        "AIRS_API_URL",
        "AIRS_API_KEY",
        "AIRS_TIMEOUT",
        "AIRS_RETRY_ATTEMPTS",
        "AIRS_RETRY_DELAY",
        "AIRS_DEFAULT_PROFILE_ID",
        "AIRS_DEFAULT_PROFILE_NAME",
        "CACHE_ENABLED",
        "CACHE_TTL_SECONDS",
        "CACHE_MAX_SIZE",
        "RATE_LIMIT_ENABLED",
        "RATE_LIMIT_MAX_REQUESTS",
        "RATE_LIMIT_WINDOW_MS",
        "LOG_LEVEL",
        "LOG_JSON",
        "MCP_TRANSPORT",
        "MCP_SERVER_PORT",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestFromEnv:
    """Test loading settings from the environment."""

    def test_defaults(self, clean_env):
        config = ServerConfig.from_env()

        assert config.transport == "stdio"
        assert config.airs.api_url == DEFAULT_API_URL
        assert config.airs.api_key is None
        assert config.airs.timeout == 30.0
        assert config.airs.max_retries == 3
        assert config.cache.enabled is True
        assert config.cache.ttl_seconds == 300
        assert config.cache.max_size == 1000
        assert config.rate_limit.max_requests == 100
        assert config.rate_limit.window_seconds == 60.0
        assert config.logging.log_level == "INFO"

    def test_overrides(self, clean_env):
        clean_env.setenv("AIRS_API_URL", "https://airs.example.com")
        clean_env.setenv("AIRS_API_KEY", "secret")
        clean_env.setenv("AIRS_RETRY_ATTEMPTS", "5")
        clean_env.setenv("AIRS_DEFAULT_PROFILE_NAME", "Strict")
        clean_env.setenv("CACHE_ENABLED", "false")
        clean_env.setenv("RATE_LIMIT_WINDOW_MS", "1000")
        clean_env.setenv("LOG_LEVEL", "debug")
        clean_env.setenv("LOG_JSON", "true")
        clean_env.setenv("MCP_TRANSPORT", "http")
        clean_env.setenv("MCP_SERVER_PORT", "8080")

        config = ServerConfig.from_env()

        assert config.airs.api_url == "https://airs.example.com"
        assert config.airs.api_key == "secret"
        assert config.airs.max_retries == 5
        assert config.airs.default_profile_name == "Strict"
        assert config.cache.enabled is False
        assert config.rate_limit.window_ms == 1000
        assert config.logging.log_level == "DEBUG"
        assert config.logging.json_logs is True
        assert config.transport == "http"
        assert config.port == 8080

    def test_to_dict_masks_api_key(self, server_config):
        data = server_config.to_dict()

        assert data["airs"]["api_key"] == "***"
        assert data["cache"]["ttl_seconds"] == 60


class TestValidation:
    """Test configuration validation."""

    def test_valid_config(self, server_config):
        assert server_config.validate() == (True, [])

    def test_missing_api_key(self, server_config):
        config = replace(server_config, airs=replace(server_config.airs, api_key=None))

        is_valid, errors = validate_config(config)

        assert not is_valid
        assert errors == ["AIRS_API_KEY가 설정되지 않음"]

    @pytest.mark.parametrize(
        "airs_changes",
        [
            {"api_url": "not-a-url"},
            {"timeout": 0.5},
            {"max_retries": -1},
            {"retry_delay": 0.01},
        ],
    )
    def test_invalid_airs_settings(self, server_config, airs_changes):
        config = replace(server_config, airs=replace(server_config.airs, **airs_changes))

        is_valid, errors = config.validate()

        assert not is_valid
        assert len(errors) == 1

    def test_invalid_cache_and_rate_limit(self, server_config):
        config = replace(
            server_config,
            cache=CacheConfig(ttl_seconds=-1, max_size=-1),
            rate_limit=RateLimitConfig(max_requests=0, window_ms=10),
        )

        is_valid, errors = config.validate()

        assert not is_valid
        assert len(errors) == 4

    def test_transport_and_port(self, server_config):
        assert replace(server_config, transport="sse").validate()[0] is False
        assert replace(server_config, transport="http", port=70000).validate()[0] is False
        assert replace(server_config, transport="stdio", port=70000).validate()[0] is True

    def test_collects_all_errors(self):
        config = ServerConfig(name=" ", airs=AirsConfig(api_key=None, api_url="ftp://x"))

        is_valid, errors = config.validate()

        assert not is_valid
        assert len(errors) == 3

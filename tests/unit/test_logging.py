"""Unit tests for structured logging setup."""

import logging

import pytest
import structlog

from prisma_airs_mcp.config import LoggingConfig
from prisma_airs_mcp.utils.logging import REDACTED, SensitiveFieldMasker, configure_logging


class TestSensitiveFieldMasker:
    def test_masks_top_level_fields(self):
        masker = SensitiveFieldMasker(["api_key", "x-pan-token"])

        result = masker(None, "info", {"event": "init", "api_key": "secret", "scan_id": "S-1"})

        assert result == {"event": "init", "api_key": REDACTED, "scan_id": "S-1"}

    def test_matching_is_case_insensitive_substring(self):
        masker = SensitiveFieldMasker(["token"])

        result = masker(None, "info", {"X-PAN-TOKEN": "secret", "access_token": "t"})

        assert result == {"X-PAN-TOKEN": REDACTED, "access_token": REDACTED}

    def test_masks_nested_values(self):
        masker = SensitiveFieldMasker(["authorization"])

        result = masker(
            None,
            "info",
            {
                "event": "request",
                "headers": {"Authorization": "Bearer x", "Accept": "application/json"},
                "items": [{"authorization": "y"}, "plain"],
            },
        )

        assert result["headers"] == {"Authorization": REDACTED, "Accept": "application/json"}
        assert result["items"] == [{"authorization": REDACTED}, "plain"]


class TestConfigureLogging:
    @pytest.fixture(autouse=True)
    def restore_logging(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)
        structlog.reset_defaults()

    def test_sets_level(self):
        configure_logging(LoggingConfig(log_level="DEBUG"))

        assert logging.getLogger().level == logging.DEBUG

    def test_json_output_redacts(self, capsys):
        configure_logging(LoggingConfig(log_level="INFO", json_logs=True))

        structlog.get_logger("prisma_airs_mcp.test").info("configured", api_key="secret")

        captured = capsys.readouterr()
        assert "secret" not in captured.err
        assert REDACTED in captured.err
        assert captured.out == ""

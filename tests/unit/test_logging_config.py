"""Unit tests for logging setup."""

import structlog

from gitlab_reconciler.logging_config import MASK, mask_sensitive_values, setup_logging


class TestMaskSensitiveValues:
    """Test the masking processor."""

    def test_masks_top_level_keys(self):
        """Test that sensitive keys are masked."""
        event = mask_sensitive_values(
            None, "info", {"event": "x", "token": "glpat-1", "identity": "42"}
        )

        assert event["token"] == MASK
        assert event["identity"] == "42"

    def test_masks_nested_keys(self):
        """Test that sensitive keys inside mappings are masked."""
        event = mask_sensitive_values(
            None,
            "info",
            {"event": "x", "request": {"url": "https://ci", "Private_Token": "s"}},
        )

        assert event["request"] == {"url": "https://ci", "Private_Token": MASK}

    def test_leaves_none(self):
        """Test that absent values stay absent."""
        event = mask_sensitive_values(None, "info", {"event": "x", "password": None})

        assert event["password"] is None


class TestSetupLogging:
    """Test structlog configuration."""

    def test_json_format(self):
        """Test the JSON renderer is installed last."""
        setup_logging("DEBUG", "json")

        processors = structlog.get_config()["processors"]

        assert isinstance(processors[-1], structlog.processors.JSONRenderer)
        assert mask_sensitive_values in processors

    def test_text_format(self):
        """Test the console renderer for text output."""
        setup_logging("INFO", "text")

        processors = structlog.get_config()["processors"]

        assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)

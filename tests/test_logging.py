"""Tests for structured logging."""

import logging

import pytest
import structlog

from purple_faucet.observability.logging import (
    _add_request_id,
    _redact_sensitive,
    clear_request_id,
    configure_logging,
    get_logger,
    request_id_var,
    set_request_id,
)


class TestRequestIdContext:
    """Tests for request ID context variable."""

    def test_request_id_default_none(self):
        """Request ID is None by default."""
        clear_request_id()
        assert request_id_var.get() is None

    def test_set_and_clear_request_id(self):
        set_request_id("req-123")
        assert request_id_var.get() == "req-123"
        clear_request_id()
        assert request_id_var.get() is None


class TestAddRequestIdProcessor:
    """Tests for _add_request_id processor."""

    def test_adds_request_id_when_set(self):
        """Adds request_id to event dict when set."""
        set_request_id("req-abc")
        try:
            result = _add_request_id(None, None, {"event": "test"})
            assert result["request_id"] == "req-abc"
        finally:
            clear_request_id()

    def test_no_request_id_when_not_set(self):
        """Does not add request_id when not set."""
        clear_request_id()
        result = _add_request_id(None, None, {"event": "test"})
        assert "request_id" not in result


class TestRedactSensitiveProcessor:
    """Tests for _redact_sensitive processor."""

    @pytest.mark.parametrize(
        "field",
        ["private_key", "private_key_file", "password", "api_token", "authorization"],
    )
    def test_redacts_sensitive_fields(self, field):
        result = _redact_sensitive(None, None, {"event": "test", field: "hunter2"})
        assert result[field] == "[REDACTED]"

    def test_redacts_case_insensitive(self):
        """Redacts fields case-insensitively."""
        result = _redact_sensitive(None, None, {"event": "test", "Private_Key": "0x123"})
        assert result["Private_Key"] == "[REDACTED]"

    def test_preserves_non_sensitive(self):
        """Preserves addresses and amounts."""
        event_dict = {"event": "test", "recipient": "0xabc", "amount": 100}
        result = _redact_sensitive(None, None, event_dict)
        assert result["recipient"] == "0xabc"
        assert result["amount"] == 100

    def test_preserves_token_address_field(self):
        """Token contract addresses are not credentials."""
        result = _redact_sensitive(None, None, {"event": "sweep", "token_address": "0xdef"})
        assert result["token_address"] == "0xdef"


class TestConfigureLogging:
    """Tests for configure_logging function."""

    def setup_method(self):
        """Reset structlog before each test."""
        structlog.reset_defaults()

    def test_configure_json_format(self):
        configure_logging(level="INFO", log_format="json")
        assert get_logger("test") is not None

    def test_configure_text_format(self):
        configure_logging(level="DEBUG", log_format="text")
        assert get_logger("test") is not None

    def test_configure_log_level(self):
        configure_logging(level="WARNING", log_format="json")

        assert logging.getLogger().level == logging.WARNING

    def test_configure_invalid_log_level_raises(self):
        with pytest.raises(ValueError, match="Invalid log level"):
            configure_logging(level="INVALID", log_format="json")

    def test_configure_invalid_log_format_raises(self):
        with pytest.raises(ValueError, match="Invalid log format"):
            configure_logging(level="INFO", log_format="xml")


def test_logging_integration(capfd):
    """Integration test for structured logging."""
    structlog.reset_defaults()
    # Force reconfiguration by clearing handlers
    logging.getLogger().handlers.clear()

    configure_logging(level="INFO", log_format="json")

    set_request_id("req-integration")
    logger = get_logger("integration")
    logger.info("payout sent", recipient="0xabc", private_key="0xsecret")
    clear_request_id()

    captured = capfd.readouterr()
    output = captured.out + captured.err
    assert "req-integration" in output
    assert "payout sent" in output
    assert "0xabc" in output
    assert "0xsecret" not in output

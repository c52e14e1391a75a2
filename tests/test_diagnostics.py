"""
Tests for drop diagnostics and rate-limited logging.
"""
import logging
from unittest.mock import MagicMock, patch

from chainloader.diagnostics import Diagnostic, DropReason, rate_limited_log, reset_rate_limits


class TestDiagnostic:
    """Test the Diagnostic record."""

    def test_str_with_tx_id(self):
        diagnostic = Diagnostic(3, DropReason.NOT_FOUND, "abc not in keeper", tx_id="tx0003")
        assert str(diagnostic) == "tx0003 dropped (NOT_FOUND): abc not in keeper"

    def test_str_without_tx_id(self):
        diagnostic = Diagnostic(0, DropReason.UNPARSEABLE, "no intent")
        assert str(diagnostic).startswith("item 0 dropped (UNPARSEABLE)")


class TestRateLimitedLog:
    """Tests for the rate limiting cache."""

    def test_repeated_message_suppressed(self):
        mock_logger = MagicMock()

        assert rate_limited_log("Keeper down", level="warning", logger_instance=mock_logger)
        mock_logger.warning.assert_called_once_with("Keeper down")

        mock_logger.reset_mock()
        assert not rate_limited_log("Keeper down", level="warning", logger_instance=mock_logger)
        mock_logger.warning.assert_not_called()

    def test_level_and_message_are_part_of_the_key(self):
        mock_logger = MagicMock()
        rate_limited_log("Keeper down", level="warning", logger_instance=mock_logger)

        assert rate_limited_log("Keeper down", level="error", logger_instance=mock_logger)
        mock_logger.error.assert_called_once_with("Keeper down")
        assert rate_limited_log("Keeper slow", level="warning", logger_instance=mock_logger)

    def test_reset(self):
        mock_logger = MagicMock()
        rate_limited_log("again", logger_instance=mock_logger)
        reset_rate_limits()
        assert rate_limited_log("again", logger_instance=mock_logger)
        assert mock_logger.warning.call_count == 2

    def test_cache_used(self):
        mock_cache = {}
        with patch('chainloader.diagnostics._log_cache', mock_cache):
            rate_limited_log("cached", level="info", logger_instance=MagicMock())
        assert "info:cached" in mock_cache

    def test_default_logger(self, caplog):
        with caplog.at_level(logging.WARNING, logger="chainloader.diagnostics"):
            rate_limited_log("to the module logger")
        assert "to the module logger" in caplog.text

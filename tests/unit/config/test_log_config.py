"""
Tests for structlog configuration.
"""

import json
import logging

import structlog

from logflux.log_config import configure_logging


class TestConfigureLogging:
    """Test SDK diagnostic logging setup."""

    def test_json_output(self, caplog) -> None:
        configure_logging("DEBUG", json_output=True)
        caplog.set_level(logging.INFO, logger="logflux.test")

        structlog.get_logger("logflux.test").info("Pipeline event", queue_size=3)

        assert logging.getLogger("aiohttp").level == logging.WARNING
        event = json.loads(caplog.records[-1].getMessage())
        assert event["event"] == "Pipeline event"
        assert event["queue_size"] == 3
        assert event["level"] == "info"
        assert event["logger"] == "logflux.test"

    def test_unknown_level_falls_back(self) -> None:
        configure_logging("LOUD")
        assert structlog.is_configured()

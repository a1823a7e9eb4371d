"""
Tests for settings-driven startup: logging setup and server options.
"""

import logging

import pytest

from shared.config.logging import DevelopmentFormatter, StructuredFormatter, setup_logging
from shared.config.settings import Settings
from ws_gateway.main import uvicorn_options


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


class TestSetupLogging:
    """setup_logging() follows the settings it is given."""

    def test_production_uses_json_at_info(self, restore_root_logger):
        setup_logging(Settings(_env_file=None, environment="production", debug=False))

        root = restore_root_logger
        assert root.level == logging.INFO
        formatter = root.handlers[0].formatter
        assert isinstance(formatter, StructuredFormatter)
        assert formatter.include_source is False

    def test_debug_development_uses_readable_format(self, restore_root_logger):
        setup_logging(Settings(_env_file=None, environment="development", debug=True))

        root = restore_root_logger
        assert root.level == logging.DEBUG
        assert isinstance(root.handlers[0].formatter, DevelopmentFormatter)


class TestProductionValidation:
    """Checks that only apply in production."""

    def test_idle_timeout_must_exceed_ping_interval(self):
        cfg = Settings(
            _env_file=None,
            environment="production",
            debug=False,
            allowed_origins="https://app.example.com",
            ws_ping_interval=30,
            ws_ping_timeout=60,
            ws_idle_timeout=10,
        )

        assert cfg.validate_production_settings() == [
            "WS_IDLE_TIMEOUT must be greater than WS_PING_INTERVAL"
        ]

    def test_idle_timeout_disabled_by_default(self):
        assert Settings(_env_file=None).ws_idle_timeout is None


class TestUvicornOptions:
    """Protocol ping settings reach the server."""

    def test_ping_and_size_settings_passed_through(self):
        cfg = Settings(_env_file=None, ws_ping_interval=10, ws_ping_timeout=20, ws_max_message_size=1024)

        options = uvicorn_options(cfg)

        assert options["ws_ping_interval"] == 10
        assert options["ws_ping_timeout"] == 20
        assert options["ws_max_size"] == 1024
        assert options["port"] == cfg.ws_gateway_port

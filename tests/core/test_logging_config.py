"""Tests for logging configuration (stdlib levels plus structlog wiring).

pytest's logging plugin attaches its capture handlers to the root logger at
the start of every test phase, so handlers are detached inside the test body,
right before configure_logging runs.
"""

import logging

import pytest
import structlog
import yaml

from lab_catalog.core.logging_config import configure_logging


@pytest.fixture
def detach_root_handlers(monkeypatch):
    """Return a callable that leaves the root logger with no handlers."""
    root = logging.getLogger()
    original = root.handlers
    detached = []
    monkeypatch.setattr(root, "level", root.level)
    for name in ("httpx", "httpcore", "lab_catalog.gateway"):
        monkeypatch.setattr(logging.getLogger(name), "level", logging.getLogger(name).level)

    def detach():
        detached.extend(original)
        root.handlers = []
        return root

    yield detach
    # Capture handlers detached mid-phase are never removed by pytest itself
    root.handlers = [handler for handler in original if handler not in detached]
    structlog.reset_defaults()


class TestConfigureLogging:
    def test_configure_logging_applies_yaml_levels_and_reduces_noise(self, detach_root_handlers, tmp_path):
        # Arrange
        config_file = tmp_path / "logging.yaml"
        config_file.write_text(yaml.dump({"root_level": "WARNING", "module_levels": {"lab_catalog.gateway": "DEBUG"}}))
        root = detach_root_handlers()

        # Act
        configure_logging(config_path=config_file)

        # Assert
        assert len(root.handlers) == 1
        assert root.level == logging.WARNING
        assert logging.getLogger("lab_catalog.gateway").level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("httpcore").level == logging.WARNING
        assert structlog.is_configured()

    def test_configure_logging_explicit_level_wins_over_config(self, detach_root_handlers, tmp_path):
        config_file = tmp_path / "logging.yaml"
        config_file.write_text(yaml.dump({"root_level": "WARNING"}))
        root = detach_root_handlers()

        configure_logging(level=logging.DEBUG, config_path=config_file)

        assert root.level == logging.DEBUG

    def test_configure_logging_is_idempotent(self, detach_root_handlers, tmp_path):
        # Arrange
        root = detach_root_handlers()
        configure_logging(config_path=tmp_path / "missing.yaml")
        handlers = list(root.handlers)

        # Act
        configure_logging(level=logging.ERROR, config_path=tmp_path / "missing.yaml")

        # Assert: second call changes nothing
        assert root.handlers == handlers
        assert root.level == logging.INFO

    def test_configure_logging_leaves_existing_handlers_alone(self, detach_root_handlers, tmp_path):
        root = detach_root_handlers()
        existing = logging.NullHandler()
        root.addHandler(existing)
        level_before = root.level

        configure_logging(level=logging.DEBUG, config_path=tmp_path / "missing.yaml")

        assert root.handlers == [existing]
        assert root.level == level_before

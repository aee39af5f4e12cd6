"""
Centralized logging configuration.

Configure once at the application entry point, not per module. Library
modules only call structlog.get_logger(__name__); structlog renders through
stdlib logging so levels from config/logging.yaml apply to both.
"""

import logging
import sys
from pathlib import Path

import structlog

from lab_catalog.core.config_loader import load_logging_config


def configure_logging(level: int | None = None, config_path: Path | None = None, json_output: bool = False) -> None:
    """
    Configure Python logging and structlog for the entire application.

    Truly idempotent: safe to call multiple times without side effects.
    Checks if root logger already has handlers before configuring.

    Args:
        level: Root level override (default: root_level from config)
        config_path: Optional logging.yaml path
        json_output: Render events as JSON instead of key=value pairs
    """
    root_logger = logging.getLogger()

    # Only configure if no handlers exist (truly idempotent)
    if root_logger.handlers:
        return

    config = load_logging_config(config_path)
    root_level = level if level is not None else logging.getLevelName(str(config["root_level"]).upper())
    if not isinstance(root_level, int):
        root_level = logging.INFO

    logging.basicConfig(
        level=root_level,
        format=config["format"],
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    # Set specific loggers
    for name, module_level in config["module_levels"].items():
        logging.getLogger(name).setLevel(str(module_level).upper())

    # Reduce noise
    for name, noisy_level in config["reduce_noise"].items():
        logging.getLogger(name).setLevel(str(noisy_level).upper())

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.processors.KeyValueRenderer(key_order=["event"], sort_keys=True)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

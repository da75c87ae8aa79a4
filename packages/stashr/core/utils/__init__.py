"""Shared utilities for stashr."""

from stashr.core.utils.logging import StructuredJSONFormatter, configure_logging, runner_log_level

__all__ = [
    "StructuredJSONFormatter",
    "configure_logging",
    "runner_log_level",
]

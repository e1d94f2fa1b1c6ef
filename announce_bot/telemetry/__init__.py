"""
Telemetry and observability for announce-bot.

Contains logging and metrics utilities.
"""

from .logger import setup_logging, JSONFormatter, CorrelationFilter, MetricsLogger

__all__ = [
    "setup_logging",
    "JSONFormatter",
    "CorrelationFilter",
    "MetricsLogger"
]

"""
Logging configuration for announce-bot.
Provides structured JSON logging with correlation IDs and metrics.
"""

import logging
import sys
import json
import time
from datetime import datetime, timezone
from typing import Any, Optional


# Attributes every LogRecord carries; anything else came in via extra=
_STANDARD_FIELDS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
    'filename', 'module', 'exc_info', 'exc_text', 'stack_info',
    'lineno', 'funcName', 'created', 'msecs', 'relativeCreated',
    'thread', 'threadName', 'processName', 'process', 'taskName',
    'getMessage', 'message', 'asctime'
}


class JSONFormatter(logging.Formatter):
    """
    Custom JSON formatter for structured logging.
    Formats log records as JSON with consistent fields.
    """

    def __init__(
        self,
        service_name: str = "announce-bot",
        include_extra: bool = True
    ):
        """
        Initialize JSON formatter.

        Args:
            service_name: Name of the service for log identification
            include_extra: Whether to include extra fields from log record
        """
        super().__init__()
        self.service_name = service_name
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        """
        Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON-formatted log string
        """
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "service": self.service_name,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        if self.include_extra:
            for key, value in record.__dict__.items():
                if key not in _STANDARD_FIELDS and not key.startswith('_'):
                    log_entry[key] = value

        return json.dumps(log_entry, default=self._json_default)

    @staticmethod
    def _json_default(obj: Any) -> str:
        if isinstance(obj, datetime):
            return obj.isoformat()
        return str(obj)


class CorrelationFilter(logging.Filter):
    """
    Logging filter that adds correlation ID to log records.
    Useful for following one request or chat message through the logs.
    """

    def __init__(self, correlation_id: Optional[str] = None):
        super().__init__()
        self.correlation_id = correlation_id

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, 'correlation_id'):
            record.correlation_id = self.correlation_id or self._generate_correlation_id()

        return True

    @staticmethod
    def _generate_correlation_id() -> str:
        return f"ab-{int(time.time() * 1000)}"


def setup_logging(
    level: str = "INFO",
    service_name: str = "announce-bot",
    enable_json: bool = True,
    enable_correlation: bool = True
) -> None:
    """
    Setup logging configuration for the service.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        service_name: Service name for log identification
        enable_json: Whether to use JSON formatting
        enable_correlation: Whether to add correlation IDs

    Raises:
        ValueError: If the level name is unknown
    """
    numeric_level = getattr(logging, level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {level}")

    if enable_json:
        formatter = JSONFormatter(service_name=service_name)
    else:
        formatter = logging.Formatter(
            fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    if enable_correlation:
        handler.addFilter(CorrelationFilter())

    logging.root.setLevel(numeric_level)
    logging.root.handlers.clear()
    logging.root.addHandler(handler)

    # Third-party loggers are chatty at DEBUG
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.access").setLevel(logging.INFO)
    logging.getLogger("redis").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("slixmpp").setLevel(logging.WARNING)
    logging.getLogger("fastapi").setLevel(logging.INFO)

    logger = logging.getLogger(__name__)
    logger.info(
        "Logging configured",
        extra={
            "component": "logger",
            "level": level,
            "json_enabled": enable_json,
            "correlation_enabled": enable_correlation
        }
    )


class MetricsLogger:
    """
    Helper class for logging metrics and performance data.
    """

    def __init__(self, logger_name: str = "metrics"):
        self.logger = logging.getLogger(logger_name)

    def log_http_request(
        self,
        method: str,
        path: str,
        status_code: int,
        duration_ms: float,
        client_ip: Optional[str] = None
    ) -> None:
        """
        Log HTTP request metrics.

        Args:
            method: HTTP method
            path: Request path
            status_code: Response status code
            duration_ms: Request duration in milliseconds
            client_ip: Client IP address
        """
        self.logger.info(
            f"HTTP request: {method} {path}",
            extra={
                "metric_type": "http_request",
                "method": method,
                "path": path,
                "status_code": status_code,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip
            }
        )

    def log_command(
        self,
        user: str,
        keyword: str,
        duration_ms: float,
        replied: bool
    ) -> None:
        """
        Log a routed chat command.

        Args:
            user: User id of the sender
            keyword: Matched keyword, or "" for the fallback reply
            duration_ms: Handler duration in milliseconds
            replied: Whether a reply was produced
        """
        self.logger.info(
            f"Chat command: {keyword or '<unknown>'}",
            extra={
                "metric_type": "chat_command",
                "user": user,
                "keyword": keyword,
                "duration_ms": round(duration_ms, 2),
                "replied": replied
            }
        )

    def log_fanout(
        self,
        recipients: int,
        delivered: int,
        failed: int,
        duration_ms: float
    ) -> None:
        """
        Log the result of one announcement fan-out.

        Args:
            recipients: Subscribers in the snapshot
            delivered: Successful sends
            failed: Lookup or send failures
            duration_ms: Fan-out duration in milliseconds
        """
        self.logger.info(
            "Announcement fan-out finished",
            extra={
                "metric_type": "fanout",
                "recipients": recipients,
                "delivered": delivered,
                "failed": failed,
                "duration_ms": round(duration_ms, 2)
            }
        )

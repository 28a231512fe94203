"""
Structured logging with correlation IDs.
"""

import logging
import logging.handlers
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import structlog

# Context variable for correlation ID
correlation_id_ctx: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)


class CorrelationIDProcessor:
    """Structlog processor to add correlation ID to log entries."""

    def __call__(self, logger, method_name, event_dict):
        correlation_id = correlation_id_ctx.get()
        if correlation_id:
            event_dict["correlation_id"] = correlation_id
        return event_dict


class TimestampProcessor:
    """Structlog processor to add consistent timestamps."""

    def __call__(self, logger, method_name, event_dict):
        event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
        return event_dict


class ServiceInfoProcessor:
    """Structlog processor to add service information."""

    def __init__(self, marketplace: Optional[str] = None):
        self.marketplace = marketplace

    def __call__(self, logger, method_name, event_dict):
        event_dict["service"] = "skintrader"
        if self.marketplace:
            event_dict["marketplace"] = self.marketplace
        return event_dict


class LoggingManager:
    """Centralized logging configuration and management."""

    def __init__(self):
        self.configured = False

    def configure_logging(
        self,
        log_level: str = "INFO",
        log_format: str = "json",
        log_file: Optional[str] = None,
        marketplace: Optional[str] = None,
        max_file_size: int = 10 * 1024 * 1024,
        backup_count: int = 5,
    ):
        """Configure application logging."""
        if self.configured:
            return

        processors = [
            structlog.stdlib.filter_by_level,
            CorrelationIDProcessor(),
            TimestampProcessor(),
            ServiceInfoProcessor(marketplace),
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
        ]

        if log_format == "json":
            processors.append(structlog.processors.JSONRenderer())
        else:
            processors.append(structlog.dev.ConsoleRenderer())

        structlog.configure(
            processors=processors,
            wrapper_class=structlog.stdlib.BoundLogger,
            logger_factory=structlog.stdlib.LoggerFactory(),
            context_class=dict,
            cache_logger_on_first_use=True,
        )

        # structlog renders the final line; stdlib only routes it
        root_logger = logging.getLogger()
        root_logger.setLevel(getattr(logging, log_level.upper()))

        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(logging.Formatter("%(message)s"))
        root_logger.addHandler(console_handler)

        if log_file:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=max_file_size,
                backupCount=backup_count,
                encoding="utf-8",
            )
            file_handler.setFormatter(logging.Formatter("%(message)s"))
            root_logger.addHandler(file_handler)

        self._configure_third_party_loggers()

        self.configured = True

    def _configure_third_party_loggers(self):
        """Reduce noise from third-party libraries."""
        logging.getLogger("aiohttp").setLevel(logging.WARNING)
        logging.getLogger("websockets").setLevel(logging.WARNING)
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
        logging.getLogger("asyncio").setLevel(logging.WARNING)

    def get_logger(self, name: str, extra_context: Dict[str, Any] = None) -> structlog.BoundLogger:
        """Get a logger instance, optionally bound to extra context."""
        logger = structlog.get_logger(name)

        if extra_context:
            logger = logger.bind(**extra_context)

        return logger

    def set_correlation_id(self, correlation_id: str = None) -> str:
        """Set correlation ID for current context."""
        if correlation_id is None:
            correlation_id = str(uuid.uuid4())

        correlation_id_ctx.set(correlation_id)
        return correlation_id

    def clear_correlation_id(self):
        """Clear correlation ID from current context."""
        correlation_id_ctx.set(None)


# Global logging manager instance
logging_manager = LoggingManager()


def get_logger(name: str, extra_context: Dict[str, Any] = None) -> structlog.BoundLogger:
    """Get a configured logger instance."""
    return logging_manager.get_logger(name, extra_context)


def set_correlation_id(correlation_id: str = None) -> str:
    """Set correlation ID for current context."""
    return logging_manager.set_correlation_id(correlation_id)


def clear_correlation_id():
    """Clear correlation ID from current context."""
    logging_manager.clear_correlation_id()


def configure_logging(**kwargs):
    """Configure application logging."""
    return logging_manager.configure_logging(**kwargs)

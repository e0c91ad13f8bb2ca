"""Structured logging for deslack peers."""
import logging.config
from typing import Any, Dict

import structlog

# Applied to structlog events and to records from stdlib loggers such as uvicorn
SHARED_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.processors.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
]


def configure_logging(log_level: str = "INFO", json_logs: bool = True) -> None:
    """Send structlog and stdlib records through one handler and renderer."""
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "deslack": {
                "()": structlog.stdlib.ProcessorFormatter,
                "foreign_pre_chain": SHARED_PROCESSORS,
                "processors": [
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    renderer,
                ],
            },
        },
        "handlers": {
            "console": {"class": "logging.StreamHandler", "formatter": "deslack"},
        },
        "root": {"handlers": ["console"], "level": log_level},
        "loggers": {
            # one line per operator API request is noise at INFO
            "uvicorn.access": {"level": "WARNING"},
        },
    })

    structlog.configure(
        processors=SHARED_PROCESSORS + [
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def log_error(logger: Any, error: Exception, context: Dict[str, Any] = None) -> None:
    """Log an exception as an ``error_occurred`` event with its type and message."""
    logger.error("error_occurred",
                 error_type=type(error).__name__,
                 error_message=str(error),
                 **(context or {}))

import logging
import sys
from pathlib import Path

import structlog

from src.config.config import config


class CustomFormatter(logging.Formatter):
    """Custom formatter that implements the required format: [yyyy-mm-dd hh:mm:ss] [log_type] [class_name]: {message}"""

    def format(self, record):
        # Extract class name from the logger name
        class_name = record.name.split('.')[-1] if '.' in record.name else record.name

        # Format timestamp as yyyy-mm-dd hh:mm:ss
        timestamp = self.formatTime(record, '%Y-%m-%d %H:%M:%S')

        formatted_message = f"[{timestamp}] [{record.levelname}] [{class_name}]: {record.getMessage()}"

        # Add exception info if present
        if record.exc_info:
            formatted_message += '\n' + self.formatException(record.exc_info)

        return formatted_message


# Processors shared by structlog loggers and foreign stdlib records
SHARED_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
]


def render_text(_, __, event_dict) -> str:
    """Render an event as its message followed by key=value fields."""
    event = event_dict.pop("event", "")
    fields = " ".join(f"{key}={value}" for key, value in event_dict.items())
    return f"{event} {fields}".rstrip()


def ensure_logs_directory() -> Path:
    """Ensure the logs directory exists."""
    logs_dir = config.get_log_dir()
    logs_dir.mkdir(parents=True, exist_ok=True)
    return logs_dir


def get_log_file_path() -> Path:
    """Get the log file path based on environment."""
    logs_dir = ensure_logs_directory()
    log_filename = f"weather_advisor_{config.environment}.log"
    return logs_dir / log_filename


def build_formatter() -> logging.Formatter:
    """Pick the handler formatter for the configured log format."""
    if config.log_format == "json":
        return structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=SHARED_PROCESSORS,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ],
        )
    return CustomFormatter()


def setup_logging():
    """
    Configure logging for the application.

    structlog events are rendered through the standard logging module so
    application, uvicorn and httpx records share the same handlers: stdout
    plus a per-environment file. Text output uses the format
    [yyyy-mm-dd hh:mm:ss] [log_type] [class_name]: {message} with the
    structured fields appended as key=value pairs; json output renders one
    object per record.
    """
    level = getattr(logging, config.log_level.upper())

    if config.log_format == "json":
        processors = [
            *SHARED_PROCESSORS,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ]
    else:
        # CustomFormatter adds timestamp, level and logger name
        processors = [
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            render_text,
        ]

    structlog.configure(
        processors=[structlog.stdlib.filter_by_level, *processors],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    log_file_path = get_log_file_path()

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Clear any existing handlers
    root_logger.handlers.clear()

    formatter = build_formatter()

    file_handler = logging.FileHandler(log_file_path, encoding='utf-8')
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    # Request URLs are already logged by the HTTP middleware
    logging.getLogger("httpx").setLevel(logging.WARNING)

    logger = structlog.get_logger(__name__)
    logger.info("Logging configured", log_file=str(log_file_path), log_format=config.log_format)

"""JSON logging configuration for devcert."""

import logging

from pythonjsonlogger import jsonlogger


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter trimmed to the fields useful on a developer terminal.

    Keeps timestamp, level, message, exc_info, funcName and lineno. Process and
    thread details are dropped since devcert runs as a single short-lived process.
    """

    allowed_fields = frozenset(
        {
            "timestamp",
            "level",
            "message",
            "exc_info",
            "funcName",
            "lineno",
        }
    )

    def add_fields(self, log_record, record, message_dict):
        """Populate the record, then drop everything outside ``allowed_fields``.

        Args:
            log_record: Dict to be logged as JSON
            record: LogRecord object from logging framework
            message_dict: Dict containing message and args
        """
        super().add_fields(log_record, record, message_dict)

        if "levelname" in log_record:
            log_record["level"] = log_record.pop("levelname")

        for key in [key for key in log_record if key not in self.allowed_fields]:
            log_record.pop(key)


def _setup_logger() -> logging.Logger:
    """Initialize and configure the package logger.

    Returns:
        Configured logger with CustomJsonFormatter
    """
    logger = logging.getLogger("devcert")

    # Module reloads must not stack handlers
    if logger.handlers:
        return logger

    handler = logging.StreamHandler()
    formatter = CustomJsonFormatter(
        fmt="%(timestamp)s %(levelname)s %(funcName)s %(lineno)d %(message)s",
        timestamp=True,
    )
    handler.setFormatter(formatter)

    logger.setLevel(logging.INFO)
    logger.addHandler(handler)
    logger.propagate = False

    return logger


def set_verbose(verbose: bool) -> None:
    """Switch the package logger between INFO and DEBUG."""
    LOGGER.setLevel(logging.DEBUG if verbose else logging.INFO)


# Singleton logger instance - import this in other modules
LOGGER = _setup_logger()

import logging
import sys
from datetime import datetime, timezone

from pythonjsonlogger import jsonlogger

SERVICE_NAME = "recovery-workbook"

# Third-party loggers that drown out request-level logs at INFO
NOISY_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "asyncio")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """One JSON object per line, tagged with the service name."""

    def add_fields(self, log_record, record, message_dict):
        super(CustomJsonFormatter, self).add_fields(log_record, record, message_dict)
        if not log_record.get('timestamp'):
            log_record['timestamp'] = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        log_record['level'] = record.levelname
        log_record['logger'] = record.name
        log_record['service'] = SERVICE_NAME
        if record.levelno >= logging.WARNING:
            log_record['location'] = f"{record.module}:{record.lineno}"


def _has_json_handler(logger: logging.Logger) -> bool:
    return any(isinstance(h.formatter, CustomJsonFormatter) for h in logger.handlers)


def setup_logging(log_level_str: str = "INFO"):
    """
    Configures structured JSON logging on the root logger.

    Calling it again only changes the level.
    """
    log_level = getattr(logging, log_level_str.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    if not _has_json_handler(root_logger):
        log_handler = logging.StreamHandler(sys.stdout)
        log_handler.setFormatter(CustomJsonFormatter('%(timestamp)s %(level)s %(logger)s %(message)s'))
        root_logger.addHandler(log_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    root_logger.info(f"JSON logging configured at level {logging.getLevelName(log_level)}.")

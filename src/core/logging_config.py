import logging
import sys
from pythonjsonlogger import jsonlogger

SERVICE_NAME = "drive-engine"


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    def add_fields(self, log_record, record, message_dict):
        super(CustomJsonFormatter, self).add_fields(log_record, record, message_dict)
        if not log_record.get('timestamp'):
            log_record['timestamp'] = record.created
        log_record['level'] = (log_record.get('level') or record.levelname).upper()
        log_record['service'] = SERVICE_NAME
        log_record['module'] = record.module
        log_record['lineno'] = record.lineno


def _has_json_handler(logger: logging.Logger) -> bool:
    return any(isinstance(h.formatter, CustomJsonFormatter) for h in logger.handlers)


def setup_logging(log_level_str: str = "INFO") -> logging.Logger:
    """
    Routes every logger through one JSON handler on stdout.

    Called at import time by main.py; calling it again (tests, reloads) only
    changes the level.
    """
    log_level = getattr(logging, log_level_str.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    if _has_json_handler(root_logger):
        root_logger.debug(f"JSON logging already configured, level now {logging.getLevelName(log_level)}")
        return root_logger

    log_handler = logging.StreamHandler(sys.stdout)
    log_handler.setFormatter(CustomJsonFormatter('%(timestamp)s %(level)s %(name)s %(message)s'))
    root_logger.addHandler(log_handler)
    root_logger.info(f"JSON logging configured with level {logging.getLevelName(log_level)}")
    return root_logger

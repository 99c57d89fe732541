"""Logging configuration for the portal backend."""
import logging
import os
import json
from logging.handlers import RotatingFileHandler
from shared.models import now


class StructuredFormatter(logging.Formatter):
    """JSON formatter; ``extra={'extra_fields': {...}}`` adds keys to the entry."""

    def format(self, record):
        log_entry = {
            'timestamp': now().isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_fields'):
            log_entry.update(record.extra_fields)

        return json.dumps(log_entry, default=str)


def setup_logging(logs_dir=None):
    """Configure the root logger with a rotating JSON file and a console handler.

    Args:
        logs_dir: Directory for ``portal.log`` (defaults to ``PORTAL_LOG_DIR`` or ./logs)
    """
    log_level_str = os.getenv('PORTAL_LOG_LEVEL', 'INFO').upper()
    log_level = getattr(logging, log_level_str, logging.INFO)

    logs_dir = logs_dir or os.getenv('PORTAL_LOG_DIR') or os.path.join(os.path.dirname(__file__), '..', 'logs')
    os.makedirs(logs_dir, exist_ok=True)

    logger = logging.getLogger()
    logger.setLevel(log_level)

    structured_formatter = StructuredFormatter()
    simple_formatter = logging.Formatter(
        '%(asctime)s %(levelname)-8s %(name)-20s %(message)s'
    )

    log_file = os.path.join(logs_dir, 'portal.log')
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=10*1024*1024,  # 10MB
        backupCount=5
    )
    file_handler.setLevel(log_level)
    file_handler.setFormatter(structured_formatter)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(simple_formatter)

    # Repeated app creation (tests, reloader) must not stack handlers
    for handler in list(logger.handlers):
        if getattr(handler, '_portal_handler', False):
            logger.removeHandler(handler)
            handler.close()
    file_handler._portal_handler = True
    console_handler._portal_handler = True

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    for noisy in ('werkzeug', 'sqlalchemy.engine', 'urllib3', 'requests', 'libcloud'):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logger.info("Logging initialized", extra={
        'extra_fields': {
            'log_level': log_level_str,
            'log_file': log_file,
            'structured_logging': True
        }
    })

    return logger

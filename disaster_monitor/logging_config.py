"""Logging setup shared by the entry points.

``run.py`` and ``wsgi.py`` call ``setup_logging`` once before the
application is created so that the startup migration is logged with
the same format as request handling. Modules log through
``logging.getLogger(__name__)`` and never configure handlers
themselves.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler


def sanitize_log_message(record_msg):
    """Escape newlines so report fields cannot forge extra log lines."""
    if isinstance(record_msg, str):
        return record_msg.replace('\n', '\\n').replace('\r', '\\r')
    return record_msg


class SanitizedFormatter(logging.Formatter):
    """Formatter that escapes newlines in the rendered message."""

    def formatMessage(self, record):
        original_message = record.message
        record.message = sanitize_log_message(record.message)
        try:
            return super().formatMessage(record)
        finally:
            record.message = original_message


def setup_logging(level: str = None, log_file: str = None):
    """Configure the root logger.

    Args:
        level: Level name; defaults to ``LOG_LEVEL`` or ``INFO``.
        log_file: Optional path for a rotating log file; defaults to
            ``LOG_FILE``. Logs always go to stderr as well.
    """
    level = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()
    log_file = log_file or os.environ.get("LOG_FILE")
    formatter = SanitizedFormatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    handlers = []
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    handlers.append(stream_handler)

    if log_file:
        try:
            log_dir = os.path.dirname(log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            file_handler = RotatingFileHandler(
                log_file,
                maxBytes=10 * 1024 * 1024,
                backupCount=5,
                encoding='utf-8',
            )
            file_handler.setFormatter(formatter)
            handlers.append(file_handler)
        except OSError as e:
            sys.stderr.write(f"WARNING: Could not create log file handler at {log_file}: {e}\n")

    logging.basicConfig(level=level, handlers=handlers, force=True)

    # HTTP/2 stack logs every frame at DEBUG
    for noisy in ('httpx', 'httpcore', 'hpack', 'h2'):
        logging.getLogger(noisy).setLevel(logging.WARNING)

import logging
import os
from logging.handlers import NTEventLogHandler, RotatingFileHandler
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
EVENT_LOG_FORMAT = "[%(name)s] %(message)s"


def setup_console_logger(logs_dir: Optional[str] = None, level: int = logging.INFO) -> logging.Logger:
    """Log to stdout, and to logs_dir/image_server.log with rotation when given."""
    handlers = [logging.StreamHandler()]
    if logs_dir:
        os.makedirs(logs_dir, exist_ok=True)
        logfile = os.path.join(logs_dir, "image_server.log")
        handlers.append(RotatingFileHandler(logfile, maxBytes=5 * 1024 * 1024, backupCount=5, encoding="utf-8"))

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)
    return logging.getLogger()


def setup_event_logger(source: str, level: int = logging.INFO) -> logging.Logger:
    """Send all records to the Windows event log under the service's source name.

    NTEventLogHandler needs pywin32 and registers the source on first use.
    """
    handler = NTEventLogHandler(source)
    handler.setFormatter(logging.Formatter(EVENT_LOG_FORMAT))
    logging.basicConfig(level=level, handlers=[handler], force=True)
    return logging.getLogger()

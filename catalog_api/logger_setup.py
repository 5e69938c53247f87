"""
Logging for the Book Catalog API.

Components log through ``get_logger(name)``. stdout gets one JSON object per
record, with keyword arguments of the logging call as top-level fields; the
file ``<LOG_DIR>/<name>.log`` gets a plain-text copy::

    logger = get_logger("catalog-queries")
    logger.info("Book indexed", book_id="42", version=1)
"""

import logging
import json
import os
import sys
from datetime import datetime
from typing import Any, Dict, Optional

from .settings import get_settings

SERVICE_NAME = "book-catalog"
FILE_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "service": SERVICE_NAME,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        log_data.update(getattr(record, "fields", {}))
        return json.dumps(log_data, default=str)


class ELKLogger(logging.Logger):
    """Logger whose info/warning/error accept keyword fields"""

    def _log_fields(self, level: int, msg: str, exc_info=None, **fields: Any) -> None:
        if self.isEnabledFor(level):
            self._log(level, msg, (), exc_info=exc_info, extra={"fields": fields})

    def info(self, msg: str, **fields: Any) -> None:
        self._log_fields(logging.INFO, msg, **fields)

    def warning(self, msg: str, **fields: Any) -> None:
        self._log_fields(logging.WARNING, msg, **fields)

    def error(self, msg: str, exc_info=None, **fields: Any) -> None:
        self._log_fields(logging.ERROR, msg, exc_info=exc_info, **fields)


_loggers: Dict[str, ELKLogger] = {}


def get_logger(name: str, log_dir: Optional[str] = None) -> ELKLogger:
    """Return the cached logger for ``name``, creating its handlers once."""
    if name in _loggers:
        return _loggers[name]

    settings = get_settings()
    log_dir = log_dir or settings.log_dir
    os.makedirs(log_dir, exist_ok=True)

    logging.setLoggerClass(ELKLogger)
    logger = logging.getLogger(name)
    logging.setLoggerClass(logging.Logger)
    logger.setLevel(getattr(logging, settings.log_level, logging.INFO))

    if not logger.handlers:
        file_handler = logging.FileHandler(os.path.join(log_dir, f"{name}.log"))
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(file_handler)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(JSONFormatter())
        logger.addHandler(console_handler)

    logger.propagate = False
    _loggers[name] = logger
    return logger

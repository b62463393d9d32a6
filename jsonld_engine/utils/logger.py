"""Structured JSON logging for the JSON-LD schema engine."""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler

# Record attributes passed via ``extra=`` that end up in the JSON entry
EXTRA_FIELDS = (
    "endpoint",
    "method",
    "status_code",
    "response_time",
    "attempt",
    "post_id",
    "provider",
    "outcome",
)

# HTTP and SDK loggers that repeat what the client already logs
NOISY_LOGGERS = ("urllib3", "httpx", "httpcore", "anthropic")


class JSONFormatter(logging.Formatter):
    """One JSON object per record, carrying HTTP and generation extras."""

    def format(self, record):
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)
        entry.update({name: getattr(record, name) for name in EXTRA_FIELDS if hasattr(record, name)})
        return json.dumps(entry, default=str)


def setup_logging(log_dir="logs", level="INFO", filename="jsonld_engine.log", debug=False):
    """Console plus rotating JSON file logging.

    ``debug`` mirrors the ``debug_logging`` setting: the console shows DEBUG
    records (content source picks, raw analysis excerpts) instead of INFO.
    """
    os.makedirs(log_dir, exist_ok=True)

    root_logger = logging.getLogger()
    if root_logger.handlers:
        return root_logger

    root_logger.setLevel(logging.DEBUG if debug else getattr(logging, level.upper(), logging.INFO))
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG if debug else logging.INFO)
    console_handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))

    # 10 MB per file, 5 backups
    file_handler = RotatingFileHandler(
        os.path.join(log_dir, filename),
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(JSONFormatter())

    root_logger.addHandler(console_handler)
    root_logger.addHandler(file_handler)
    return root_logger

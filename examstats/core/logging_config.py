"""
Logging setup for the analysis engine and its jobs.
"""
import logging
import sys
from typing import Optional

from pythonjsonlogger import jsonlogger

from .config import Settings, get_settings

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
JSON_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"


def configure_logging(settings: Optional[Settings] = None) -> logging.Logger:
    """Install a single stream handler on the root logger."""
    settings = settings or get_settings()

    handler = logging.StreamHandler(sys.stderr)
    if settings.LOG_FORMAT.lower() == "json":
        handler.setFormatter(jsonlogger.JsonFormatter(JSON_FORMAT))
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(getattr(logging, settings.LOG_LEVEL, logging.INFO))
    return root

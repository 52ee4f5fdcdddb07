"""
Log output setup for the famvault logger tree

Plain text by default; one JSON object per line with FAMVAULT_LOG_JSON=1.

Modules log through the standard library:
    logger = logging.getLogger(__name__)
"""

import json
import logging
import sys
from datetime import datetime, UTC
from typing import Optional

# Attributes every LogRecord carries; anything else came in through `extra=`
_RESERVED_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName", "levelname",
    "levelno", "lineno", "module", "msecs", "pathname", "process",
    "processName", "relativeCreated", "thread", "threadName", "exc_info",
    "exc_text", "stack_info", "taskName", "message",
})

PLAIN_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per record; fields passed via extra= are kept"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                log_data[key] = value

        return json.dumps(log_data, default=str)


def configure_logging(level: Optional[str] = None, json_output: Optional[bool] = None) -> None:
    """
    Install a single stream handler on the famvault logger tree.

    Args:
        level: Log level name. Defaults to settings.log_level.
        json_output: Use JSONFormatter. Defaults to settings.log_json.
    """
    if level is None or json_output is None:
        from famvault.config import get_settings
        settings = get_settings()
        level = level or settings.log_level
        json_output = settings.log_json if json_output is None else json_output

    root = logging.getLogger("famvault")
    root.setLevel(level.upper())

    # Re-configuring replaces the previous handler instead of stacking
    root.handlers = []

    handler = logging.StreamHandler(sys.stdout)
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(PLAIN_FORMAT))
    root.addHandler(handler)
    root.propagate = False

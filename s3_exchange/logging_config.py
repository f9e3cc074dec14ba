"""Logging setup for the s3-exchange command line."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Attached by the executor through ``extra=``.
EXCHANGE_FIELDS = ("method", "path", "status", "namespace")


class JSONFormatter(logging.Formatter):
    """One JSON object per line, with any exchange fields the record carries."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (name, getattr(record, name))
            for name in EXCHANGE_FIELDS
            if getattr(record, name, None) is not None
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(level: str = "WARNING", fmt: str = "text") -> None:
    """Send all records at *level* and above to stderr as text or JSON."""
    numeric_level = getattr(logging, level.upper(), logging.WARNING)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if fmt == "json" else logging.Formatter(TEXT_FORMAT))
    logging.basicConfig(level=numeric_level, handlers=[handler], force=True)

    # httpx logs every request at INFO, which the executor already covers.
    logging.getLogger("httpx").setLevel(max(numeric_level, logging.WARNING))

"""JSON log formatting for Plex Defaulter.

Every entry carries the time, level, logger and message. Lines emitted
inside ``run_context`` also carry the library and group, and the update
fields callers pass through ``extra`` (viewer, part_id, status, http_status,
attempt) are lifted to the top level, so all lines about one viewer or one
part can be selected with a single filter.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

RUN_FIELDS = ("library", "group")
UPDATE_FIELDS = ("viewer", "part_id", "status", "http_status", "attempt")


class JSONFormatter(logging.Formatter):
    """Format records as one JSON object per line.

    Only the run context and the update fields are emitted besides the
    base keys; other ``extra`` attributes are ignored so entries keep a
    stable shape.
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: dict[str, Any] = {
            "time": created.isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for name in RUN_FIELDS + UPDATE_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)

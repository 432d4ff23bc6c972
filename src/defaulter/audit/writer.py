"""Per-run audit files.

Every outcome is appended to two files created when the writer starts:
``run-<YYYYMMDDTHHMMSS>.json`` (a JSON array) and ``run-<...>.csv``. Both
are streamed so a crash leaves everything written so far on disk; close()
terminates the JSON array.
"""

from __future__ import annotations

import csv
import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Any

from defaulter.domain.models import Outcome
from defaulter.updater.outcomes import AUDIT_FIELDS, build_audit_record

logger = logging.getLogger(__name__)


def _csv_value(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


class AuditWriter:
    """Append-only audit sink writing JSON and CSV files.

    Inactive (every call is a no-op) when no directory is configured.
    close() is idempotent so it can be called from normal shutdown, signal
    handlers and error paths alike.
    """

    def __init__(self, base_dir: Path | None, *, now: datetime | None = None) -> None:
        """Open the audit files.

        Args:
            base_dir: Directory for audit files, created if missing. None
                disables auditing.
            now: Run start time used in the file names (default: now, UTC).

        Raises:
            OSError: If the directory or files cannot be created.
        """
        self._lock = threading.Lock()
        self._json_file: IO[str] | None = None
        self._csv_file: IO[str] | None = None
        self._csv_writer: csv.DictWriter[str] | None = None
        self._first_entry = True
        self._closed = False
        self.json_path: Path | None = None
        self.csv_path: Path | None = None

        if base_dir is None:
            return

        base_dir.mkdir(parents=True, exist_ok=True)
        stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%dT%H%M%S")
        self.json_path = base_dir / f"run-{stamp}.json"
        self.csv_path = base_dir / f"run-{stamp}.csv"

        self._json_file = open(self.json_path, "a", encoding="utf-8")
        self._json_file.write("[\n")

        self._csv_file = open(self.csv_path, "a", encoding="utf-8", newline="")
        self._csv_writer = csv.DictWriter(
            self._csv_file, fieldnames=list(AUDIT_FIELDS), lineterminator="\n"
        )
        self._csv_writer.writeheader()
        logger.info("Writing audit records to %s and %s", self.json_path, self.csv_path)

    @property
    def active(self) -> bool:
        return self._json_file is not None and not self._closed

    def append(self, outcome: Outcome) -> None:
        """Append one outcome to both files."""
        self.append_record(build_audit_record(outcome))

    def append_record(self, record: dict[str, Any]) -> None:
        """Append an already flattened audit record."""
        with self._lock:
            json_file, csv_file = self._json_file, self._csv_file
            if self._closed or json_file is None or csv_file is None:
                return
            if not self._first_entry:
                json_file.write(",\n")
            json_file.write(json.dumps(record, default=str))
            json_file.flush()
            self._first_entry = False

            if self._csv_writer is not None:
                self._csv_writer.writerow(
                    {name: _csv_value(record.get(name)) for name in AUDIT_FIELDS}
                )
            csv_file.flush()

    def close(self) -> None:
        """Terminate the JSON array and close both files (once)."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if self._json_file is not None:
                self._json_file.write("\n]\n")
                self._json_file.close()
            if self._csv_file is not None:
                self._csv_file.close()

    def __enter__(self) -> AuditWriter:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

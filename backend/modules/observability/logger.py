"""
modules/observability/logger.py
--------------------------------
Per-trip audit trail as JSON Lines: one file per stream, one record per line.

    audit = StructuredLogger()
    audit.log("trip_g1", "VERSION_SAVED", {"trip_id": "g1", "version": 3})
    audit.read("trip_g1", event_type="PLAN_ADOPTED")

Files live in  <AUDIT_LOG_DIR>/<stream_id>.jsonl ; characters outside
[A-Za-z0-9_.-] in the stream id become "_" in the file name.

Record shape:
    {"timestamp": ISO-8601 UTC, "stream_id": str, "event_type": str,
     "payload": {...}}

Writers append under a lock and flush every record, so a reader in the same
process always sees complete lines.
"""

from __future__ import annotations

import json
import logging
import re
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Optional

import config

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


def stream_path(logs_dir: Path, stream_id: str) -> Path:
    return logs_dir / f"{_UNSAFE_CHARS.sub('_', stream_id)}.jsonl"


class StructuredLogger:
    """Thread-safe append-only JSONL audit writer/reader."""

    def __init__(self, logs_dir: Path | str | None = None) -> None:
        self.logs_dir = Path(logs_dir or config.AUDIT_LOG_DIR)
        self._lock = threading.Lock()
        self._handles: dict[str, IO[str]] = {}

    # ── writing ───────────────────────────────────────────────────────────

    def log(self, stream_id: str, event_type: str, payload: dict) -> None:
        """Append one record. Unserialisable values are written with str()."""
        line = json.dumps(
            {
                "timestamp":  datetime.now(timezone.utc).isoformat(),
                "stream_id":  stream_id,
                "event_type": event_type,
                "payload":    payload,
            },
            default=str,
            ensure_ascii=False,
        )
        with self._lock:
            fh = self._handles.get(stream_id) or self._open(stream_id)
            fh.write(line + "\n")
            fh.flush()

    def close(self, stream_id: str | None = None) -> None:
        """Close one stream's handle, or all of them."""
        with self._lock:
            ids = [stream_id] if stream_id else list(self._handles)
            for sid in ids:
                fh = self._handles.pop(sid, None)
                if fh is not None:
                    fh.close()

    # ── reading ───────────────────────────────────────────────────────────

    def read(self, stream_id: str, event_type: Optional[str] = None) -> list[dict]:
        """
        Records of a stream in write order, optionally filtered by type.
        A missing stream reads as empty; a corrupt line is skipped with a
        warning.
        """
        path = stream_path(self.logs_dir, stream_id)
        if not path.exists():
            return []

        records: list[dict] = []
        with self._lock, open(path, "r", encoding="utf-8") as fh:
            for lineno, raw in enumerate(fh, 1):
                raw = raw.strip()
                if not raw:
                    continue
                try:
                    record = json.loads(raw)
                except ValueError:
                    logger.warning("%s:%d is not valid JSON; skipped", path.name, lineno)
                    continue
                if event_type is None or record.get("event_type") == event_type:
                    records.append(record)
        return records

    # ── internals ─────────────────────────────────────────────────────────

    def _open(self, stream_id: str) -> IO[str]:
        self.logs_dir.mkdir(parents=True, exist_ok=True)
        fh = open(stream_path(self.logs_dir, stream_id), "a", encoding="utf-8")  # noqa: SIM115
        self._handles[stream_id] = fh
        return fh

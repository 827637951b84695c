"""
Audit log for resolution runs.

This module manages the file:

    data/logs/resolution_log.json

Every resolution outcome (semantic success, fallback, exception) is appended
as one record of the form

    {"type": ..., "cellHash": ..., "cellLen": ..., "courses": ..., "ts": ...}

Design rules:
- raw cell text is never written, only a non-cryptographic hash of it
- API keys are stripped from every record
- only the newest MAX_ENTRIES records are kept
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

MAX_ENTRIES = 500

_SECRET_KEYS = ("api_key", "apiKey", "authorization", "Authorization")


def _default_log_path() -> Path:
    """
    Return the default path of resolution_log.json inside the package.

    Using a function instead of a constant makes testing easier,
    because tests can override the path.
    """
    base_dir = Path(__file__).resolve().parent
    return base_dir / "data" / "logs" / "resolution_log.json"


def cell_hash(text: str | None) -> str:
    """32-bit FNV-1a hash of a cell, as lowercase hex."""
    h = 0x811C9DC5
    for ch in str(text or ""):
        h ^= ord(ch)
        h = (h * 0x01000193) & 0xFFFFFFFF
    return format(h, "x")


class AuditLog:
    """
    Append-only record list with optional JSON persistence.

    With `path=None` the log lives in memory only (used by tests and
    one-shot CLI runs with --no-log).
    """

    def __init__(self, path: str | Path | None = None, max_entries: int = MAX_ENTRIES, persist: bool = True):
        self.path: Optional[Path] = None
        if persist:
            self.path = Path(path) if path is not None else _default_log_path()
        self.max_entries = max_entries
        self.entries: list[dict[str, Any]] = self.load()

    def load(self) -> list[dict[str, Any]]:
        """
        Load records from disk.

        Returns an empty list if the file does not exist or is invalid.
        """
        if self.path is None or not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError, UnicodeDecodeError):
            logger.warning("Ignoring unreadable audit log at %s", self.path)
            return []
        return [e for e in data if isinstance(e, dict)] if isinstance(data, list) else []

    def save(self) -> None:
        if self.path is None:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(self.entries, indent=2, ensure_ascii=False), encoding="utf-8")
        except OSError as e:
            # records stay in memory
            logger.warning("Could not write audit log to %s: %s", self.path, e)

    def record(self, entry: dict[str, Any]) -> dict[str, Any]:
        safe = {k: v for k, v in entry.items() if k not in _SECRET_KEYS}
        safe.setdefault("ts", datetime.now(timezone.utc).isoformat(timespec="seconds"))

        self.entries.append(safe)
        if len(self.entries) > self.max_entries:
            del self.entries[: len(self.entries) - self.max_entries]
        self.save()
        return safe

    def summarize(self) -> dict[str, Any]:
        by_type = Counter(str(e.get("type") or "unknown") for e in self.entries)
        by_reason = Counter(str(e["reason"]) for e in self.entries if e.get("reason"))
        return {"total": len(self.entries), "by_type": dict(by_type), "by_reason": dict(by_reason)}

    def export(self, out_path: str | Path) -> int:
        """
        Write all records to `out_path`. Returns the number of records.
        """
        out = Path(out_path)
        out.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "exportedAt": datetime.now(timezone.utc).isoformat(timespec="seconds"),
            "logs": self.entries,
        }
        out.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
        return len(self.entries)

    def clear(self) -> None:
        self.entries = []
        if self.path is not None and self.path.exists():
            self.path.unlink()

"""
Unit tests for the resolution audit log.

Audit contract:
- Missing/invalid file -> empty log
- API keys are never written
- only the newest max_entries records are kept
- JSON schema: a list of records, export wraps it in {"exportedAt", "logs"}
"""

import json
import tempfile
import unittest
from pathlib import Path

from schedulellm.audit import AuditLog, cell_hash


class TestCellHash(unittest.TestCase):
    def test_known_values(self) -> None:
        self.assertEqual(cell_hash(""), "811c9dc5")
        self.assertEqual(cell_hash("a"), "e40c292c")

    def test_stable_and_distinct(self) -> None:
        self.assertEqual(cell_hash("数学/1-16周"), cell_hash("数学/1-16周"))
        self.assertNotEqual(cell_hash("数学/1-16周"), cell_hash("数学/1-8周"))


class TestAuditLog(unittest.TestCase):
    def test_load_missing_file_returns_empty(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            log = AuditLog(Path(d) / "missing.json")
            self.assertEqual(log.entries, [])

    def test_load_invalid_file_returns_empty(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "log.json"
            p.write_text("{not json", encoding="utf-8")
            with self.assertLogs("schedulellm.audit", level="WARNING"):
                log = AuditLog(p)
            self.assertEqual(log.entries, [])

    def test_record_and_reload(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "logs" / "resolution_log.json"
            log = AuditLog(p)
            saved = log.record({"type": "llm_success", "cellHash": "abc", "courses": 2, "api_key": "sk-secret"})

            self.assertNotIn("api_key", saved)
            self.assertIn("ts", saved)
            self.assertNotIn("sk-secret", p.read_text(encoding="utf-8"))

            reloaded = AuditLog(p)
            self.assertEqual(len(reloaded.entries), 1)
            self.assertEqual(reloaded.entries[0]["type"], "llm_success")

    def test_entries_are_capped(self) -> None:
        log = AuditLog(persist=False, max_entries=3)
        for i in range(5):
            log.record({"type": "llm_success", "n": i})
        self.assertEqual([e["n"] for e in log.entries], [2, 3, 4])

    def test_summarize(self) -> None:
        log = AuditLog(persist=False)
        log.record({"type": "llm_success"})
        log.record({"type": "llm_failure", "reason": "Empty courses array"})
        log.record({"type": "llm_failure", "reason": "Empty courses array"})
        summary = log.summarize()
        self.assertEqual(summary["total"], 3)
        self.assertEqual(summary["by_type"], {"llm_success": 1, "llm_failure": 2})
        self.assertEqual(summary["by_reason"], {"Empty courses array": 2})

    def test_export_and_clear(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "log.json"
            log = AuditLog(p)
            log.record({"type": "run_start", "cells": 1})

            out = Path(d) / "export" / "audit.json"
            self.assertEqual(log.export(out), 1)
            data = json.loads(out.read_text(encoding="utf-8"))
            self.assertIn("exportedAt", data)
            self.assertEqual(data["logs"][0]["type"], "run_start")

            log.clear()
            self.assertEqual(log.entries, [])
            self.assertFalse(p.exists())

    def test_unwritable_path_keeps_records_in_memory(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            blocker = Path(d) / "file"
            blocker.write_text("", encoding="utf-8")
            log = AuditLog(blocker / "logs" / "resolution_log.json")

            with self.assertLogs("schedulellm.audit", level="WARNING"):
                log.record({"type": "run_start"})
            self.assertEqual(len(log.entries), 1)

    def test_memory_only_log_writes_nothing(self) -> None:
        log = AuditLog(persist=False)
        log.record({"type": "run_start"})
        self.assertIsNone(log.path)
        self.assertEqual(len(log.entries), 1)


if __name__ == "__main__":
    unittest.main()

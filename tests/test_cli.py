"""
Tests for CLI entry points.

These tests focus on:
- Basic CLI argument validation (parse requires text, unknown weeks fail)
- Deterministic-only batch resolution into a temporary report file
  (--no-llm and --no-log, so no network and no real audit data are touched)
"""

import io
import json
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path

from schedulellm.cli import _load_cells, main


def _run(argv: list[str]) -> tuple[int, str]:
    buf = io.StringIO()
    code = None
    with redirect_stdout(buf):
        try:
            main(argv)
        except SystemExit as e:
            code = e.code
    return code, buf.getvalue()


class TestCLI(unittest.TestCase):
    def test_cli_parse_requires_text(self) -> None:
        # parse without text should exit with nonzero
        code, _ = _run(["parse", ""])
        self.assertNotEqual(code, 0)

    def test_cli_parse_json(self) -> None:
        code, out = _run(["parse", "--json", "软件工程/1-16周(单)/N608/软件2101班"])
        self.assertEqual(code, 0)
        records = json.loads(out)
        self.assertEqual(records[0]["name"], "软件工程")
        self.assertEqual(records[0]["class_name"], "软件2101")
        self.assertEqual(records[0]["weeks"], [1, 3, 5, 7, 9, 11, 13, 15])

    def test_cli_parse_escaped_line_breaks(self) -> None:
        code, out = _run(["parse", "高等数学/1-16周/教三101\\n大学英语/1-8周/N608"])
        self.assertEqual(code, 0)
        self.assertEqual(len(out.strip().splitlines()), 2)

    def test_cli_weeks(self) -> None:
        code, out = _run(["weeks", "1-3周"])
        self.assertEqual(code, 0)
        self.assertIn("[1, 2, 3]", out)

        code, _ = _run(["weeks", "abc"])
        self.assertEqual(code, 1)

    def test_cli_location(self) -> None:
        code, out = _run(["location", "桂林洋一教203"])
        self.assertEqual(code, 0)
        self.assertIn("building=一教", out)
        self.assertIn("room=203", out)

    def test_cli_resolve_missing_file(self) -> None:
        code, _ = _run(["resolve", "does-not-exist.json", "--no-llm", "--no-log"])
        self.assertEqual(code, 1)

    def test_cli_resolve_without_llm(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            cells = Path(d) / "cells.txt"
            cells.write_text(
                "星期一\n\n软件工程/1-16周(单)/N608/软件2101班\n\n高等数学/1-16周/教三101\n\n软件工程/1-16周(单)/N608/软件2101班\n",
                encoding="utf-8",
            )
            out = Path(d) / "out" / "report.json"

            code, _ = _run(["resolve", str(cells), "--no-llm", "--no-log", "--out", str(out)])

            self.assertEqual(code, 0)
            report = json.loads(out.read_text(encoding="utf-8"))
            self.assertEqual(report["model"], "regex")
            self.assertEqual(report["cells"], 2)
            self.assertEqual(report["courses"], 2)
            self.assertEqual([o["status"] for o in report["outcomes"]], ["regex", "regex"])


class TestLoadCells(unittest.TestCase):
    def test_json_variants(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "cells.json"
            p.write_text(json.dumps({"cells": [["星期一", "数学/1-16周"]]}, ensure_ascii=False), encoding="utf-8")
            self.assertEqual(_load_cells(p), [["星期一", "数学/1-16周"]])

            p.write_text("{broken", encoding="utf-8")
            self.assertEqual(_load_cells(p), [])

    def test_text_blocks_keep_inner_line_breaks(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "cells.txt"
            p.write_text("数学\n1-16周\n\n\n英语/1-8周", encoding="utf-8")
            self.assertEqual(_load_cells(p), ["数学\n1-16周", "英语/1-8周"])


if __name__ == "__main__":
    unittest.main()

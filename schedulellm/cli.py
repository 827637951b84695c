"""
CLI (Command Line Interface).

This module provides terminal commands for extracting courses from
timetable cells, e.g.:

    schedulellm parse "软件工程/1-16周(单)/N608/软件2101班"
    schedulellm weeks "2-6周,8-12周(双)"
    schedulellm location "桂林洋一教203"
    schedulellm resolve cells.json --out courses.json
    schedulellm resolve cells.txt --no-llm
    schedulellm logs --export logs.json

Note:
- `resolve` reads cell text from a JSON file (list of strings, list of rows,
  or {"cells": [...]}) or a plain text file with blank-line separated cells
- completion service settings come from SCHEDULELLM_* environment variables
  unless given as flags (see schedulellm/config.py)
"""

from __future__ import annotations

import argparse
import json
import logging
import re
from pathlib import Path
from typing import Any, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, Progress, TaskID, TextColumn, TimeRemainingColumn

from schedulellm.audit import AuditLog
from schedulellm.config import LLMConfig
from schedulellm.llm import SemanticParser
from schedulellm.location import standardize_location
from schedulellm.parse import parse_cell
from schedulellm.resolve import HybridResolver, ResolutionReport
from schedulellm.weeks import decode_weeks, format_week_ranges

console = Console()


def _load_cells(path: Path) -> list[Any]:
    """
    Load raw cells from a JSON or text file.

    Returns [] if the file is missing or cannot be read.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return []

    if path.suffix.lower() == ".json":
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            return []
        if isinstance(data, dict):
            data = data.get("cells", [])
        return list(data) if isinstance(data, list) else []

    # plain text: cells are separated by blank lines, line breaks inside kept
    return [block.strip() for block in re.split(r"\n\s*\n", text) if block.strip()]


def _print_course(course: dict[str, Any]) -> None:
    weeks = format_week_ranges(course.get("weeks", [])) or "-"
    print(
        f"{course['name']} | {weeks} | {course['location']} | "
        f"{course['class_name'] or '-'} | {course['period_range'] or '-'} | "
        f"{course['source']} {course['confidence']:.2f}"
    )


def _cmd_parse(args: argparse.Namespace) -> int:
    """
    Parse one cell with the deterministic parser and print the records.
    """
    text = (args.text or "").replace("\\n", "\n")
    if not text.strip():
        print("Please provide cell text.")
        return 1

    courses = [c.to_dict() for c in parse_cell(text)]
    if args.json:
        print(json.dumps(courses, ensure_ascii=False, indent=2))
        return 0

    for c in courses:
        _print_course(c)
    return 0


def _cmd_weeks(args: argparse.Namespace) -> int:
    weeks = decode_weeks(args.text)
    if not weeks:
        print("No weeks found.")
        return 1
    print(f"{format_week_ranges(weeks)} -> {weeks}")
    return 0


def _cmd_location(args: argparse.Namespace) -> int:
    info = standardize_location(args.text)
    print(f"location={info.location} building={info.building} room={info.room}")
    return 0


def _build_resolver(args: argparse.Namespace, audit: AuditLog, progress: Progress, task: TaskID) -> HybridResolver:
    semantic: Optional[SemanticParser] = None
    if not args.no_llm:
        config = LLMConfig.from_env(base_url=args.base_url, api_key=args.api_key, model=args.model)
        semantic = SemanticParser(config)
        if not semantic.check_health():
            console.print("[yellow]No API key configured; direct mode will fail and fall back to regex parsing.[/]")

    def on_progress(processed: int, total: int, extracted: int) -> None:
        progress.update(task, completed=processed, total=total, extracted=extracted)

    def on_slow(position: int, total: int) -> None:
        progress.console.print(f"[yellow]cell {position}/{total}: still waiting for the completion service...[/]")

    return HybridResolver(semantic=semantic, audit=audit, on_progress=on_progress, on_slow=on_slow)


def _write_report(report: ResolutionReport, out_path: Path) -> None:
    payload = {
        "model": report.model,
        "cells": report.total,
        "courses": report.extracted,
        "outcomes": [
            {
                "status": o.status,
                "reason": o.reason,
                "courses": [c.to_dict() for c in o.courses],
                "repairs": [r.to_dict() for r in o.repairs],
            }
            for o in report.outcomes
        ],
    }
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")


def _cmd_resolve(args: argparse.Namespace) -> int:
    """
    Resolve all cells of a file with the hybrid pipeline.
    """
    path = Path(args.file)
    if not path.exists():
        print(f"File not found: {path}")
        return 1

    cells = _load_cells(path)
    if not cells:
        print("No cells found.")
        return 0

    audit = AuditLog(persist=not args.no_log)

    progress = Progress(
        TextColumn("[bold]resolving"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total} cells"),
        TextColumn("{task.fields[extracted]} courses"),
        TimeRemainingColumn(),
        console=console,
    )
    with progress:
        task = progress.add_task("resolve", total=None, extracted=0)
        report = _build_resolver(args, audit, progress, task).run(cells)

    counts = report.counts()
    print(
        f"Resolved {report.processed} cells -> {report.extracted} courses "
        f"(llm={counts.get('llm', 0)}, fallback={counts.get('fallback', 0)}, "
        f"regex={counts.get('regex', 0)}, empty={counts.get('empty', 0)})"
    )
    if report.had_exception:
        print("Some cells raised errors; see the audit log.")

    if args.out:
        _write_report(report, Path(args.out))
        print(f"Written to: {args.out}")
    else:
        for o in report.outcomes:
            for c in o.courses:
                _print_course(c.to_dict())
    return 0


def _cmd_logs(args: argparse.Namespace) -> int:
    audit = AuditLog()

    if args.export:
        n = audit.export(args.export)
        print(f"Exported {n} records to: {args.export}")
    if args.clear:
        audit.clear()
        print("Audit log cleared.")
        return 0

    summary = audit.summarize()
    print(f"Records: {summary['total']}")
    for t, n in sorted(summary["by_type"].items()):
        print(f"- {t}: {n}")
    for reason, n in sorted(summary["by_reason"].items(), key=lambda kv: -kv[1])[:10]:
        print(f"  reason {reason!r}: {n}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    """
    Build the argparse CLI parser with sub-commands.
    """
    parser = argparse.ArgumentParser(prog="schedulellm", description="Timetable cell course extraction")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p_parse = sub.add_parser("parse", help="Parse one cell with the deterministic parser")
    p_parse.add_argument("text", type=str, help="Cell text (use \\n for line breaks)")
    p_parse.add_argument("--json", action="store_true", help="Print records as JSON")

    p_weeks = sub.add_parser("weeks", help="Decode a week specification")
    p_weeks.add_argument("text", type=str, help="e.g. 1-16周(单)")

    p_loc = sub.add_parser("location", help="Split a location into building and room")
    p_loc.add_argument("text", type=str, help="e.g. 桂林洋一教203")

    p_resolve = sub.add_parser("resolve", help="Resolve all cells of a file (LLM + fallback)")
    p_resolve.add_argument("file", type=str, help="JSON or text file with cells")
    p_resolve.add_argument("--out", type=str, default="", help="Write the report as JSON")
    p_resolve.add_argument("--no-llm", action="store_true", help="Deterministic parsing only")
    p_resolve.add_argument("--no-log", action="store_true", help="Do not persist audit records")
    p_resolve.add_argument("--base-url", type=str, default=None, help="Completion service or proxy URL")
    p_resolve.add_argument("--api-key", type=str, default=None, help="API key (prefer SCHEDULELLM_API_KEY)")
    p_resolve.add_argument("--model", type=str, default=None, help="Model identifier")

    p_logs = sub.add_parser("logs", help="Summarize the audit log")
    p_logs.add_argument("--export", type=str, default="", help="Export records to a JSON file")
    p_logs.add_argument("--clear", action="store_true", help="Delete all records")

    return parser


def main(argv: list[str] | None = None) -> None:
    """
    CLI entry point. Parses args, dispatches to command handlers,
    and exits via SystemExit with a return code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )

    if args.command == "parse":
        raise SystemExit(_cmd_parse(args))
    if args.command == "weeks":
        raise SystemExit(_cmd_weeks(args))
    if args.command == "location":
        raise SystemExit(_cmd_location(args))
    if args.command == "resolve":
        raise SystemExit(_cmd_resolve(args))
    if args.command == "logs":
        raise SystemExit(_cmd_logs(args))

    raise SystemExit(2)

"""
Hybrid resolution of a whole batch of cells.

Workflow:
1. Canonicalize every cell, drop header/metadata cells, de-duplicate
2. Process the queue strictly one cell at a time:
   semantic parse -> accept if it returned courses
   otherwise (error, empty, exception) -> deterministic parse as fallback
3. Cache every accepted result by canonical key for the rest of the run
4. Report progress after each cell and write one audit record per outcome

Failures never stop the batch; the worst result for a cell is an empty
course list plus a warning.
"""

from __future__ import annotations

import logging
import re
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Iterable, List, Optional, Pattern, Sequence

from schedulellm.audit import AuditLog, cell_hash
from schedulellm.cache import ResolutionCache
from schedulellm.llm import SemanticParser, hydrate
from schedulellm.model import CourseRecord, RepairAnnotation
from schedulellm.normalize import canonicalize_cell_key
from schedulellm.parse import parse_cell

logger = logging.getLogger(__name__)

# Cells that are table headers or metadata, not courses.
DEFAULT_IGNORE_PATTERNS: List[Pattern[str]] = [
    re.compile(r"(星期|周)\s*[一二三四五六日天]"),
    re.compile(r"第\s*-*\s*[一二三四五六七八九十\d]+\s*[-~+～至,\s]*\s*[一二三四五六七八九十\d]*\s*节"),
    re.compile(r"学年|学期|课表|教工号|打印时间|注一|内容顺序"),
    re.compile(r"^(上|下|晚|早|午)\s*(午|晚|晨|间|上)$"),
    re.compile(r"^节次$"),
]

# model identifier used for cache keys when no semantic parser is configured
REGEX_MODEL = "regex"

ProgressFn = Callable[[int, int, int], None]
SlowFn = Callable[[int, int], None]


def _iter_cells(cells: Iterable[Any]) -> Iterable[Any]:
    for item in cells:
        if isinstance(item, (list, tuple)):
            yield from item
        else:
            yield item


def collect_cells(
    cells: Iterable[Any],
    ignore_patterns: Sequence[Pattern[str]] = DEFAULT_IGNORE_PATTERNS,
) -> List[str]:
    """
    Canonical keys of all distinct course cells, in first-seen order.

    `cells` may be a flat list of values or a list of rows.
    """
    seen: List[str] = []
    index: set[str] = set()
    for cell in _iter_cells(cells):
        if not isinstance(cell, str) or not cell.strip():
            continue
        key = canonicalize_cell_key(cell)
        if any(p.search(key) for p in ignore_patterns):
            continue
        if key not in index:
            index.add(key)
            seen.append(key)
    return seen


class CellQueue:
    """
    Work queue with at most one cell in flight.

    take() hands out the next cell; done() must be called before the next
    take(). The queue is owned by a single run and is not thread-safe.
    """

    def __init__(self, cells: Iterable[str]):
        self._pending: Deque[str] = deque(cells)
        self.total = len(self._pending)
        self.processed = 0
        self.in_flight: Optional[str] = None

    def take(self) -> Optional[str]:
        if self.in_flight is not None:
            raise RuntimeError("previous cell is still in flight")
        if not self._pending:
            return None
        self.in_flight = self._pending.popleft()
        return self.in_flight

    def done(self) -> None:
        if self.in_flight is None:
            raise RuntimeError("no cell in flight")
        self.in_flight = None
        self.processed += 1

    def __len__(self) -> int:
        return len(self._pending)


@dataclass
class CellOutcome:
    cell: str
    # "llm" | "fallback" | "regex" | "empty" | "cached"
    status: str
    courses: List[CourseRecord]
    reason: Optional[str] = None
    repairs: List[RepairAnnotation] = field(default_factory=list)
    # the semantic call raised instead of returning an error result
    exception: bool = False


@dataclass
class ResolutionReport:
    model: str
    total: int = 0
    processed: int = 0
    extracted: int = 0
    had_exception: bool = False
    outcomes: List[CellOutcome] = field(default_factory=list)
    cache: ResolutionCache[List[CourseRecord]] = field(default_factory=ResolutionCache)

    def courses_for(self, cell: str) -> List[CourseRecord]:
        """
        Courses of one raw cell: the cached result of this run, or a
        deterministic parse for cells the run did not see.
        """
        key = canonicalize_cell_key(cell)
        cached = self.cache.get(self.model, key)
        if cached is not None:
            return cached
        return parse_cell(cell)

    def counts(self) -> dict[str, int]:
        out: dict[str, int] = {}
        for o in self.outcomes:
            out[o.status] = out.get(o.status, 0) + 1
        return out


class HybridResolver:
    """
    Resolves cells with the semantic parser, falling back to the
    deterministic parser. Pass `semantic=None` for deterministic-only runs.
    """

    def __init__(
        self,
        semantic: Optional[SemanticParser] = None,
        audit: Optional[AuditLog] = None,
        ignore_patterns: Sequence[Pattern[str]] = DEFAULT_IGNORE_PATTERNS,
        on_progress: Optional[ProgressFn] = None,
        on_slow: Optional[SlowFn] = None,
        slow_after: Optional[float] = None,
    ):
        self.semantic = semantic
        self.audit = audit if audit is not None else AuditLog(persist=False)
        self.ignore_patterns = ignore_patterns
        self.on_progress = on_progress
        self.on_slow = on_slow
        if slow_after is None:
            slow_after = semantic.config.slow_after if semantic is not None else 3.0
        self.slow_after = slow_after

    @property
    def model(self) -> str:
        return self.semantic.config.model if self.semantic is not None else REGEX_MODEL

    # -----------------------------------------------------------------------
    # Single cell
    # -----------------------------------------------------------------------

    def _log(self, entry_type: str, cell: str, **fields: Any) -> None:
        self.audit.record({
            "type": entry_type,
            "model": self.model,
            "cellHash": cell_hash(cell),
            "cellLen": len(cell),
            **fields,
        })

    def _fallback(self, cell: str, entry_type: str, reason: str, llm_courses: int = 0) -> CellOutcome:
        courses = parse_cell(cell)
        fields: dict[str, Any] = {"reason": reason, "regexFallback": len(courses)}
        if entry_type == "llm_failure":
            fields["llmCourses"] = llm_courses
        self._log(entry_type, cell, **fields)

        if courses:
            logger.info("Fallback parser identified %d courses (cell %s)", len(courses), cell_hash(cell))
            return CellOutcome(cell, "fallback", courses, reason)
        logger.warning("Both parsers returned nothing for cell %s; header or unknown format?", cell_hash(cell))
        return CellOutcome(cell, "empty", [], reason)

    def _call_semantic(self, cell: str, position: int, total: int):
        timer: Optional[threading.Timer] = None
        if self.on_slow is not None:
            # only reports; the call itself is never cancelled
            timer = threading.Timer(self.slow_after, self.on_slow, args=(position, total))
            timer.daemon = True
            timer.start()
        try:
            return self.semantic.parse(cell)
        finally:
            if timer is not None:
                timer.cancel()

    def resolve_cell(
        self,
        cell: str,
        cache: ResolutionCache[List[CourseRecord]],
        position: int = 0,
        total: int = 1,
    ) -> CellOutcome:
        """
        Resolve one canonical cell, consulting and filling `cache`.
        """
        cached = cache.get(self.model, cell)
        if cached is not None:
            return CellOutcome(cell, "cached", cached)

        if self.semantic is None:
            outcome = CellOutcome(cell, "regex", parse_cell(cell))
            cache.put(self.model, cell, outcome.courses)
            return outcome

        try:
            result = self._call_semantic(cell, position, total)
        except Exception as e:
            logger.exception("LLM exception for cell %s", cell_hash(cell))
            outcome = self._fallback(cell, "llm_exception", f"{type(e).__name__}: {e}")
            outcome.exception = True
            cache.put(self.model, cell, outcome.courses)
            return outcome

        if result.ok:
            courses = [hydrate(c, cell, result.confidence) for c in result.courses]
            self._log("llm_success", cell, courses=len(courses))
            outcome = CellOutcome(cell, "llm", courses, repairs=list(result.repairs))
        else:
            reason = result.error or "Empty courses array"
            logger.warning("LLM failure (%s) for cell %s, trying fallback parser", reason, cell_hash(cell))
            outcome = self._fallback(cell, "llm_failure", reason, llm_courses=len(result.courses))

        cache.put(self.model, cell, outcome.courses)
        return outcome

    # -----------------------------------------------------------------------
    # Batch
    # -----------------------------------------------------------------------

    def run(self, cells: Iterable[Any]) -> ResolutionReport:
        """
        Resolve all distinct course cells of a batch, sequentially.
        """
        queue = CellQueue(collect_cells(cells, self.ignore_patterns))
        report = ResolutionReport(model=self.model, total=queue.total)
        if self.semantic is not None:
            # the parser cache lives for one run
            self.semantic.clear_cache()

        self.audit.record({"type": "run_start", "model": self.model, "cells": queue.total})
        if self.on_progress:
            self.on_progress(0, queue.total, 0)

        while True:
            cell = queue.take()
            if cell is None:
                break

            outcome = self.resolve_cell(cell, report.cache, queue.processed + 1, queue.total)
            if outcome.exception:
                report.had_exception = True

            report.outcomes.append(outcome)
            report.extracted += len(outcome.courses)
            queue.done()
            report.processed = queue.processed

            if self.on_progress:
                self.on_progress(queue.processed, queue.total, report.extracted)

        self.audit.record({
            "type": "run_end",
            "model": self.model,
            "cells": queue.total,
            "courses": report.extracted,
            **report.counts(),
        })
        return report

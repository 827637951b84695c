"""
Central data model definitions used across the project.

This module defines the canonical structure of parsed course records so that:
- the deterministic parser and the semantic (LLM) parser share the same field names
- the orchestrator, the cache and the CLI output stay consistent
- audit data (raw text, repairs, diagnostics) travels with each record
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, List, Optional, Tuple

# Placeholder used when a segment has no recognizable course name.
UNKNOWN_COURSE = "未知课程"

# Placeholder used when a course has no location ("to be announced").
LOCATION_TBA = "待通知"


@dataclass
class RepairAnnotation:
    """
    Records one correction applied to a semantic result
    (line-break repair or major/class misclassification).
    """

    field: str
    from_value: str
    to_value: str
    reason: str
    confidence: float
    spans: List[Tuple[int, int]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "field": self.field,
            "from": self.from_value,
            "to": self.to_value,
            "reason": self.reason,
            "confidence": self.confidence,
            "spans": [list(s) for s in self.spans],
        }


@dataclass
class LocationCandidate:
    """A substring considered as the room token while resolving a location."""

    index: int
    value: str
    kind: str
    score: int


@dataclass
class CourseRecord:
    """
    Represents one course entry extracted from a timetable cell.

    `weeks` is always sorted and free of duplicates.
    `location` never repeats the room when building already ends with it.
    """

    name: str
    weeks: List[int] = field(default_factory=list)
    weeks_raw: str = ""
    location: str = ""
    building: str = ""
    room: str = ""
    class_name: str = ""
    period_range: str = ""
    teacher: str = ""
    confidence: float = 0.0
    raw_str: str = ""
    raw_name: str = ""
    source: str = "regex"
    name_span: Optional[Tuple[int, int]] = None
    location_span: Optional[Tuple[int, int]] = None
    repairs: List[RepairAnnotation] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["repairs"] = [r.to_dict() for r in self.repairs]
        data["name_span"] = list(self.name_span) if self.name_span else None
        data["location_span"] = list(self.location_span) if self.location_span else None
        return data


@dataclass
class SemanticResult:
    """
    Outcome of one semantic parse.

    `courses` holds post-processed course dicts as returned by the completion
    service (not yet hydrated into CourseRecord). `error` is None on success.
    """

    courses: List[dict[str, Any]]
    confidence: float
    error: Optional[str] = None
    repairs: List[RepairAnnotation] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None and len(self.courses) > 0

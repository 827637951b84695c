"""
Deterministic parsing (cell text -> course records).

- Splits a cell into independent course segments (see segment.py)
- Splits each segment on "/" into parts and finds the week part
- Classifies every part after the week part as class / location / other
- Standardizes names, class labels and locations

Rules of thumb that this module relies on:
- the first part before the week part is the course name
- pure numbers are never locations, unless they directly follow a bare
  building name ("北苑电影大楼 / 414")
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from schedulellm.location import standardize_location
from schedulellm.model import UNKNOWN_COURSE, CourseRecord
from schedulellm.normalize import strip_outer_parens
from schedulellm.segment import split_cell
from schedulellm.weeks import decode_weeks

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

_WEEK_PART_RE = re.compile(r"(\d+[-~]\d+|\d+)周")
_DELIMITER_RE = re.compile(r"[:：;；]")

_PERIOD_RANGE_RE = re.compile(r"(\d+)\s*[-~]\s*(\d+)\s*节")
_PERIOD_PAREN_RE = re.compile(r"\(([^)]*?)节\)")

_PEOPLE_COUNT_RE = re.compile(r"人(数)?[:：°\s]*\d+|\d+\s*人")
_CLASS_RE = re.compile(r"(\d+|专业)[\s\S]*?[班级]")
_CLASS_NAME_ONLY_RE = re.compile(r"^[A-Za-z0-9一-龥]+班$")

_LOCATION_KEYWORD_RE = re.compile(r"[楼室馆区教厅场苑基地中心工程]")
_STRONG_SUFFIX_RE = re.compile(r"[楼室馆区教厅场苑基地中心]$")
_BLACKLIST_RE = re.compile(r"(专业|导论|概论|基础|原理|必修|选修|考查|考试|讲课)")

# "软件2101班" -> "软件2101": a class code followed by the class marker
_CLASS_CODE_SUFFIX_RE = re.compile(r"(\d{3,})班$")

_NAME_WITH_BRACKET_RE = re.compile(r"^(.*?[\[\(（][^()（）]*[\)）])")


# ---------------------------------------------------------------------------
# Token classification table
# ---------------------------------------------------------------------------


@dataclass
class TokenState:
    # previous token was a building name without a room number
    prev_was_building_only: bool = False


def _is_class_label(token: str, state: TokenState) -> bool:
    if _PEOPLE_COUNT_RE.search(token):
        return False
    return bool(_CLASS_RE.search(token) or _CLASS_NAME_ONLY_RE.match(token))


def _is_room_after_building(token: str, state: TokenState) -> bool:
    return state.prev_was_building_only and bool(re.fullmatch(r"\d{3,4}", token))


def _is_bare_number(token: str, state: TokenState) -> bool:
    # teacher ids, head counts, credits ("426", "0") unless a room follows a building
    return token.isdigit() and not _is_room_after_building(token, state)


def _has_letter_and_digit(token: str, state: TokenState) -> bool:
    return bool(re.search(r"[A-Za-z]", token) and re.search(r"\d", token))


def _ends_with_strong_suffix(token: str, state: TokenState) -> bool:
    return bool(_STRONG_SUFFIX_RE.search(token))


def _has_location_keyword(token: str, state: TokenState) -> bool:
    return bool(_LOCATION_KEYWORD_RE.search(token) and not _BLACKLIST_RE.search(token))


Rule = Tuple[str, Callable[[str, TokenState], bool], str]

# Evaluated top to bottom, first match wins.
TOKEN_RULES: List[Rule] = [
    ("class_label", _is_class_label, "class"),
    ("bare_number", _is_bare_number, "other"),
    ("letter_digit", _has_letter_and_digit, "location"),  # S103 / N608 / A101
    ("room_after_building", _is_room_after_building, "location"),  # 北苑电影大楼 + 414
    ("strong_suffix", _ends_with_strong_suffix, "location"),
    ("location_keyword", _has_location_keyword, "location"),
]


def classify_token(token: str, state: TokenState) -> str:
    """
    Classify one part as "class", "location" or "other" and update `state`.
    """
    outcome = "other"
    for _name, predicate, result in TOKEN_RULES:
        if predicate(token, state):
            outcome = result
            break

    if outcome == "location":
        state.prev_was_building_only = bool(_LOCATION_KEYWORD_RE.search(token)) and not re.search(r"\d", token)
    else:
        state.prev_was_building_only = False
    return outcome


# ---------------------------------------------------------------------------
# Standardization
# ---------------------------------------------------------------------------


def simplify_name(name: str | None) -> str:
    """
    Keep everything up to the end of the first bracket pair, drop trailing
    delimiters and all whitespace.

    "大学英语(二) 必修" -> "大学英语(二)"
    """
    if not name:
        return ""
    m = _NAME_WITH_BRACKET_RE.match(name)
    s = m.group(1) if m else name
    s = re.sub(r"[\s\-_/]+$", "", s)
    return re.sub(r"\s+", "", s)


def normalize_class_name(class_name: str | None) -> str:
    """
    Clean a comma-joined cohort list: parens and whitespace removed,
    upper-cased, duplicates dropped (first occurrence wins).
    """
    if not class_name:
        return ""
    labels: List[str] = []
    for raw in re.split(r"[,，]", class_name):
        label = strip_outer_parens(raw.strip())
        label = re.sub(r"\s+", "", label).upper()
        label = _CLASS_CODE_SUFFIX_RE.sub(r"\1", label)
        if label and label not in labels:
            labels.append(label)
    return ",".join(labels)


def standardize_course(course: CourseRecord) -> CourseRecord:
    """
    Shared standardization step for names, class labels, locations and teachers.
    """
    course.name = simplify_name(course.name)
    course.class_name = normalize_class_name(course.class_name)

    info = standardize_location(course.location)
    course.location = info.location
    course.building = info.building
    course.room = info.room
    if info.truncated:
        course.notes.append(f"text after room dropped: {info.truncated}")

    course.teacher = re.sub(r"\s+", "", course.teacher or "")
    return course


def score_confidence(course: CourseRecord) -> float:
    score = 0.0
    if course.name and course.name != UNKNOWN_COURSE:
        score += 0.3
    if course.weeks:
        score += 0.3
    if course.location:
        score += 0.2
    if course.class_name:
        score += 0.1
    if course.period_range:
        score += 0.1
    return round(score, 2)


# ---------------------------------------------------------------------------
# Segment parsing (CORE LOGIC)
# ---------------------------------------------------------------------------


def _split_parts(segment: str) -> List[str]:
    s = re.sub(r"[\r\n]+", "", segment)

    # "高等数学 1-16周 教三101" -> "高等数学 / 1-16周 / 教三101"
    if "/" not in s and _WEEK_PART_RE.search(s):
        s = _WEEK_PART_RE.sub(lambda m: f" / {m.group(0)} / ", s, count=1)

    s = _DELIMITER_RE.sub("/", s)
    return [p.strip() for p in s.split("/") if p.strip()]


def _period_range(week_part: str) -> str:
    m = _PERIOD_RANGE_RE.search(week_part)
    if m:
        return f"{m.group(1)}-{m.group(2)}"
    m = _PERIOD_PAREN_RE.search(week_part)
    if m:
        return m.group(1)
    return ""


def _find_week_part(parts: List[str]) -> Optional[int]:
    for i, p in enumerate(parts):
        if _WEEK_PART_RE.search(p):
            return i
    return None


def parse_course_segment(segment: str) -> CourseRecord:
    """
    Parses exactly one course segment into exactly one course record.
    """
    parts = _split_parts(segment) or [segment.strip()]

    name = parts[0]
    weeks: List[int] = []
    weeks_raw = ""
    location = ""
    class_name = ""
    period_range = ""
    notes: List[str] = []

    week_idx = _find_week_part(parts)

    if week_idx is not None:
        weeks_raw = parts[week_idx]
        weeks = decode_weeks(weeks_raw)
        period_range = _period_range(weeks_raw)

        if week_idx == 0:
            # "软件工程1-16周" -> name is the text before the week token
            m = _WEEK_PART_RE.search(parts[0])
            name = parts[0][:m.start()].strip() if m else ""
            name = name or UNKNOWN_COURSE

        locations: List[str] = []
        classes: List[str] = []
        others: List[str] = []
        state = TokenState()

        for token in parts[week_idx + 1:]:
            kind = classify_token(token, state)
            if kind == "class":
                classes.append(token)
            elif kind == "location":
                locations.append(token)
            else:
                others.append(token)

        location = " ".join(locations)
        class_name = ",".join(classes)
        # `others` may hold teacher names or ids; not mapped to a field yet
    else:
        logger.warning("No weeks found for course segment (%d chars)", len(segment))
        notes.append("no week token found")
        location = parts[1] if len(parts) > 1 else ""
        class_name = parts[2] if len(parts) > 2 else ""

    course = CourseRecord(
        name=name,
        raw_name=name,
        weeks=weeks,
        weeks_raw=weeks_raw,
        location=location,
        class_name=class_name,
        period_range=period_range,
        teacher="",
        raw_str=segment,
        source="regex",
        notes=notes,
    )
    course.confidence = score_confidence(course)

    return standardize_course(course)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_cell(text: str | None) -> List[CourseRecord]:
    """
    Parses one raw cell and returns one record per course segment.
    """
    if not text or not isinstance(text, str):
        return []
    return [parse_course_segment(seg) for seg in split_cell(text)]

"""
Week specification decoding.

Turns strings such as

    "1-16周"            -> [1..16]
    "1-16周(单)"        -> [1, 3, ..., 15]
    "2-6周,8-12周(双)"  -> [2..6, 8, 10, 12]
    "1-16单"            -> [1, 3, ..., 15]

into a sorted list of week numbers. Decoding never raises; malformed input
yields an empty list.
"""

from __future__ import annotations

import re
from typing import Iterable, List

from schedulellm.normalize import normalize_ocr_text, to_half_width

# Upper bound for a plausible teaching week, shared by every parsing path.
MAX_WEEK = 30

# "1-16周" / "5周" anywhere in a text (used for segmentation and field search)
WEEK_TOKEN_RE = re.compile(r"(\d+\s*[-~]\s*\d+|\d+)\s*周")

_PERIOD_NOTE_RE = re.compile(r"\([^)]*节\)")
_PERIOD_RANGE_RE = re.compile(r"\d+\s*(?:[-~]\s*\d+)?\s*节")
_SEGMENT_SPLIT_RE = re.compile(r"[,，;；]")
_WEEK_SCAN_RE = re.compile(
    r"(\d+)\s*(?:[-~]\s*(\d+))?\s*([周Ww])?\s*(?:\(\s*(单|双)\s*\)|(单|双))?"
)


def has_week_info(text: str) -> bool:
    return bool(WEEK_TOKEN_RE.search(text or ""))


def _expand(start: int, end: int, parity: str | None) -> Iterable[int]:
    for week in range(start, end + 1):
        if parity == "单" and week % 2 == 0:
            continue
        if parity == "双" and week % 2 != 0:
            continue
        yield week


def decode_weeks(text: str | None) -> List[int]:
    """
    Decode a week specification into a sorted, de-duplicated list.

    Every numeric token of a comma-separated segment is inspected, not only
    the first one: a segment may start with a course code such as
    "(43011091)". Tokens with neither a week marker nor a range are skipped,
    and so are tokens outside 1..MAX_WEEK.
    """
    if not text:
        return []

    s = to_half_width(normalize_ocr_text(str(text)))
    s = _PERIOD_NOTE_RE.sub("", s)
    s = _PERIOD_RANGE_RE.sub("", s)

    weeks: set[int] = set()
    for segment in _SEGMENT_SPLIT_RE.split(s):
        if not segment:
            continue
        for m in _WEEK_SCAN_RE.finditer(segment):
            start_s, end_s, marker, parity_paren, parity_bare = m.groups()
            if not marker and end_s is None:
                continue

            start = int(start_s)
            end = int(end_s) if end_s is not None else start
            if not (0 < start <= MAX_WEEK) or not (0 < end <= MAX_WEEK):
                continue

            weeks.update(_expand(start, end, parity_paren or parity_bare))

    return sorted(weeks)


def format_week_ranges(weeks: Iterable[int]) -> str:
    """
    Serialize weeks into a canonical specification, e.g. "1-8周,11-16周".

    decode_weeks(format_week_ranges(w)) == sorted(set(w)) for weeks in range.
    """
    unique = sorted(set(weeks))
    if not unique:
        return ""

    ranges: list[str] = []
    start = end = unique[0]
    for week in unique[1:]:
        if week == end + 1:
            end = week
            continue
        ranges.append(f"{start}周" if start == end else f"{start}-{end}周")
        start = end = week
    ranges.append(f"{start}周" if start == end else f"{start}-{end}周")

    return ",".join(ranges)

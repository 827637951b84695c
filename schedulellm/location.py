"""
Location decomposition (composite location string -> building + room).

Timetable locations come in many shapes: "桂林洋一教203", "工程S308",
"北苑电影大楼414", "N608", "实验实训中心A105". We scan the whitespace-free
string with an ordered table of room patterns, score every hit and keep the
best one as the room; everything before it is the building.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Pattern, Tuple

from schedulellm.model import LOCATION_TBA, LocationCandidate

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lexical substitution tables
# ---------------------------------------------------------------------------

# (pattern, replacement) applied in order before splitting
SYNONYMS: List[Tuple[Pattern[str], str]] = [
    (re.compile(r"实验实训中心"), "实训楼"),
    (re.compile(r"(校区|场地|地点|场所)[:：]\s*"), ""),
]

# Campus names carry no information for building/room splitting.
CAMPUS_NOISE = ["桂林洋", "府城", "龙昆南", "校区"]

_CJK = r"一-龥"

# (pattern, kind, base score) in priority order. Group 1 is the room value.
ROOM_PATTERNS: List[Tuple[Pattern[str], str, int]] = [
    (re.compile(rf"([A-Za-z]{{1,3}}\d{{2,4}})(?=\d{{2}}[{_CJK}])"), "alphaNum_yearMajor", 30),
    (re.compile(rf"(\d{{3,4}})(?=\d{{2}}[{_CJK}])"), "num_yearMajor", 24),
    (re.compile(r"([A-Za-z]{1,3}\d{2,4})(?!\d)"), "alphaNum", 18),
    (re.compile(r"(\d{3,4})(?!\d)"), "num", 14),
    (re.compile(r"(\d{1,4}[A-Za-z]{1,2})(?=\D|$)"), "numAlpha", 12),
]

MAX_ROOM_LEN = 10

_YEAR_MAJOR_AFTER_RE = re.compile(rf"\d{{2}}[{_CJK}]")
_DOUBLED_LETTER_RE = re.compile(r"^([A-Za-z])\1(\d)")
_LEADING_LETTER_RE = re.compile(r"^([A-Za-z])\d")


@dataclass
class LocationInfo:
    location: str
    building: str
    room: str
    # text after the room that was not kept (e.g. a glued "21软件" cohort)
    truncated: str = ""


# ---------------------------------------------------------------------------
# Candidate scoring
# ---------------------------------------------------------------------------


def _score(s: str, index: int, value: str, base: int) -> int:
    score = base
    if re.match(r"[A-Za-z]", value):
        score += 3
    if re.search(r"\d{3,4}$", value):
        score += 1
    end = index + len(value)
    if _YEAR_MAJOR_AFTER_RE.search(s[end:end + 3]):
        score += 4
    return score


def find_room_candidates(s: str) -> List[LocationCandidate]:
    """Return every acceptable room candidate of a whitespace-free string."""
    candidates: List[LocationCandidate] = []
    for pattern, kind, base in ROOM_PATTERNS:
        for m in pattern.finditer(s):
            value = m.group(1)
            if not value or len(value) > MAX_ROOM_LEN:
                continue
            if value.isdigit() and len(value) < 3:
                continue
            index = m.start(1)
            candidates.append(LocationCandidate(index, value, kind, _score(s, index, value, base)))
    return candidates


def pick_room(candidates: List[LocationCandidate]) -> Optional[LocationCandidate]:
    """Highest score wins; on a tie the earliest start offset wins."""
    best: Optional[LocationCandidate] = None
    for c in candidates:
        if best is None or c.score > best.score or (c.score == best.score and c.index < best.index):
            best = c
    return best


# ---------------------------------------------------------------------------
# Building / room repair
# ---------------------------------------------------------------------------


def repair_building_room(building: str, room: str) -> Tuple[str, str]:
    """
    Undo duplicated letters between building and room.

    "SS103" -> "S103"; building "教S" + room "S103" -> "教" + "S103".
    """
    if not building or not room:
        return building, room

    room = _DOUBLED_LETTER_RE.sub(r"\1\2", room)
    m = _LEADING_LETTER_RE.match(room)
    if m and building.endswith(m.group(1)):
        building = building[:-1]
    return building, room


def merge_building_room(building: str | None, room: str | None) -> str:
    b = re.sub(r"\s+", "", str(building or ""))
    r = re.sub(r"\s+", "", str(room or ""))
    if not b or not r:
        return b + r

    b, r = repair_building_room(b, r)
    if b.endswith(r):
        logger.debug("building already ends with room: building=%r room=%r", b, r)
        return b
    return b + r


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def clean_location_text(text: str) -> str:
    s = text
    for pattern, replacement in SYNONYMS:
        s = pattern.sub(replacement, s)
    for noise in CAMPUS_NOISE:
        s = re.sub(noise + "(校区)?", "", s)
    s = re.sub(r"校区[:：]?", "", s)
    return re.sub(r"\s+", "", s)


def standardize_location(text: str | None) -> LocationInfo:
    """
    Split a free-form location into (location, building, room).

    An empty input yields the "to be announced" placeholder.
    """
    if not text:
        return LocationInfo(location=LOCATION_TBA, building="", room="")

    s = clean_location_text(text)
    best = pick_room(find_room_candidates(s))

    building, room, truncated = s, "", ""
    if best is not None:
        room = best.value
        building = s[:best.index]
        truncated = s[best.index + len(room):]
        if truncated and _YEAR_MAJOR_AFTER_RE.match(truncated):
            logger.debug("cohort text glued after room: input=%r room=%r rest=%r", text, room, truncated)

    building, room = repair_building_room(building, room)

    location = building + room
    if building and room and building.endswith(room):
        location = building

    return LocationInfo(
        location=location or LOCATION_TBA,
        building=building,
        room=room,
        truncated=truncated,
    )

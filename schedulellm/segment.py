"""
Cell segmentation (one raw cell -> independent course substrings).

A single spreadsheet cell frequently holds several courses, e.g.

    高等数学/1-16周/教三101/软件2101班
    大学英语/(3-4节)1-8周/N608/软件2101班

Primary strategy: every "Name / [code /] [(a-b节)] weeks周" entry start is a
boundary. Fallback: a line buffer that is flushed whenever a new line
carries week info and the buffer already has some.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List

from schedulellm.normalize import normalize_ocr_text
from schedulellm.weeks import WEEK_TOKEN_RE, has_week_info

logger = logging.getLogger(__name__)

_ENTRY_RE = re.compile(
    r"(^|[\r\n]+)\s*([^/\r\n]{2,}?)\s*/\s*(?:\d{6,}\s*/\s*)?"
    r"(?:[\(（]?\s*\d+\s*[-~]\s*\d+\s*节[\)）]?\s*)?"
    r"(?:\d+\s*[-~]\s*\d+|\d+)\s*周"
)

_WEEK_BREAK_RE = re.compile(r"(\d+\s*[-~]\s*\d+|\d+)\s*[\r\n]+\s*周")


def clean_cell_text(text: str | None) -> str:
    """OCR normalization plus the delimiter variants used by course cells."""
    s = normalize_ocr_text(text)
    s = s.replace("◇", " / ")
    s = re.sub(r"[《〈]", "(", s)
    s = re.sub(r"[》〉]", ")", s)
    return _WEEK_BREAK_RE.sub(r"\1周", s)


def week_index(text: str) -> List[Dict[str, object]]:
    """Positions of all week tokens, handy when debugging segmentation."""
    return [{"idx": m.start(), "text": m.group(0)} for m in WEEK_TOKEN_RE.finditer(text)]


def _entry_starts(text: str) -> List[int]:
    return [m.start() + len(m.group(1)) for m in _ENTRY_RE.finditer(text)]


def _split_by_lines(text: str) -> List[str]:
    segments: List[str] = []
    buffer = ""
    buffer_has_week = False

    lines = [ln.strip() for ln in re.split(r"\r?\n", text)]
    for line in lines:
        if not line:
            continue
        line_has_week = has_week_info(line)
        if line_has_week and buffer_has_week:
            segments.append(buffer)
            buffer = line
            continue

        buffer = buffer.strip()
        if buffer and not buffer.endswith("/"):
            buffer += " " + line
        else:
            buffer += line
        if line_has_week:
            buffer_has_week = True

    if buffer:
        segments.append(buffer)
    return segments


def split_cell(text: str | None) -> List[str]:
    """
    Split one cell into course segments.

    Returns [] for empty input and at least one segment otherwise.
    """
    clean = clean_cell_text(text)
    if not clean:
        return []

    starts = _entry_starts(clean)
    if len(starts) > 1:
        segments = []
        for i, start in enumerate(starts):
            end = starts[i + 1] if i + 1 < len(starts) else len(clean)
            seg = clean[start:end].strip()
            if seg:
                segments.append(seg)
        return segments or [clean]

    if logger.isEnabledFor(logging.DEBUG):
        logger.debug("no entry anchors, splitting by lines; week tokens: %s", week_index(clean))
    return _split_by_lines(clean) or [clean]

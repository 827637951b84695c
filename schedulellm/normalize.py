"""
Text normalization for raw timetable cells.

Spreadsheet exports of Chinese timetables mix full-width and half-width
characters and often contain OCR line breaks in the middle of numbers
("4\\n-15周") or names. Every other module works on the canonical form
produced here.

All functions are pure.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import List


# ---------------------------------------------------------------------------
# Character folding
# ---------------------------------------------------------------------------

_FULLWIDTH_ANY_RE = re.compile(r"[！-～]")

# Offset between a full-width ASCII variant and its half-width form.
_FULLWIDTH_OFFSET = 0xFEE0

_PUNCT_MAP = str.maketrans({
    "（": "(",
    "）": ")",
    "：": ":",
    "—": "-",
    "－": "-",
})

_RANGE_BREAK_RE = re.compile(r"(\d+)\s*[\n\r]*[-~～]\s*[\n\r]*\s*(\d+)")
_DIGIT_BREAK_RE = re.compile(r"(\d+)\s*[\n\r]+\s*(\d+)")

SENTINEL = "⏎"

_CJK_ALNUM = r"A-Za-z0-9一-鿿"
_SOFT_BREAK_RE = re.compile(rf"([{_CJK_ALNUM}])\n(?=[{_CJK_ALNUM}])")


def _fold(ch: str) -> str:
    return chr(ord(ch) - _FULLWIDTH_OFFSET)


def to_half_width(text: str) -> str:
    """
    Convert every full-width ASCII variant (U+FF01..U+FF5E) and the
    ideographic space to its half-width form.
    """
    if not text:
        return ""
    s = _FULLWIDTH_ANY_RE.sub(lambda m: _fold(m.group(0)), text)
    return s.replace("　", " ")


def normalize_ocr_text(text: str | None) -> str:
    """
    Canonicalize one raw cell.

    - full-width digits, letters and punctuation -> half-width
    - parenthesis, colon and dash variants unified
    - "4\\n-\\n15" -> "4-15" and "1\\n6" -> "16" (OCR breaks inside numbers)
    - surrounding whitespace trimmed
    """
    if not text:
        return ""
    s = _FULLWIDTH_ANY_RE.sub(lambda m: _fold(m.group(0)), text)
    s = s.translate(_PUNCT_MAP)
    s = _RANGE_BREAK_RE.sub(r"\1-\2", s)
    s = _DIGIT_BREAK_RE.sub(r"\1\2", s)
    s = s.replace("～", "-")
    return s.strip()


def canonicalize_cell_key(cell: str | None) -> str:
    """
    Key used to deduplicate cells within one run.

    Two cells that only differ in full-width characters, diamond separators
    or colon/semicolon delimiters map to the same key.
    """
    s = normalize_ocr_text(str(cell or "").strip())
    s = s.replace("◇", " / ")
    return re.sub(r"[:：;；]", "/", s)


# ---------------------------------------------------------------------------
# Field normalizers (semantic path)
# ---------------------------------------------------------------------------


def normalize_punct_light(text: str | None) -> str:
    s = str(text or "")
    s = re.sub(r"[　 ]", " ", s)
    return s.replace("（", "(").replace("）", ")").replace("：", ":")


def normalize_spaces(text: str | None) -> str:
    """Light punctuation fold, then collapse whitespace runs to one space."""
    return re.sub(r"\s+", " ", normalize_punct_light(text)).strip()


def normalize_no_spaces(text: str | None) -> str:
    """Light punctuation fold, then drop all whitespace (identifier fields)."""
    return re.sub(r"\s+", "", normalize_punct_light(text)).strip()


def strip_outer_parens(text: str) -> str:
    return re.sub(r"[\)）]$", "", re.sub(r"^[\(（]", "", text))


# ---------------------------------------------------------------------------
# Prompt views
# ---------------------------------------------------------------------------


@dataclass
class PromptViews:
    """
    Three parallel views of one cell, sent to the completion service.

    original      -- line breaks unified to "\\n"
    marked        -- line breaks replaced by a visible sentinel
    preprocessed  -- soft breaks joined, hard breaks turned into " / "
    line_breaks   -- offsets of "\\n" in `original`
    """

    original: str
    marked: str
    preprocessed: str
    line_breaks: List[int]

    def to_payload(self) -> str:
        return json.dumps(
            {
                "original": self.original,
                "marked": self.marked,
                "preprocessed": self.preprocessed,
                "lineBreaks": self.line_breaks,
            },
            ensure_ascii=False,
        )


def unify_line_breaks(text: str | None) -> str:
    return str(text or "").replace("\r\n", "\n").replace("\r", "\n")


def build_prompt_views(text: str | None) -> PromptViews:
    original = unify_line_breaks(text)
    line_breaks = [i for i, ch in enumerate(original) if ch == "\n"]
    marked = original.replace("\n", SENTINEL)

    pre = _SOFT_BREAK_RE.sub(r"\1", original)
    pre = re.sub(r"\n+", " / ", pre)
    pre = re.sub(r"\s*/\s*", " / ", pre).strip()

    return PromptViews(original=original, marked=marked, preprocessed=pre, line_breaks=line_breaks)

"""
Semantic parsing (cell text -> course dicts via a chat-completion service).

- Sends the three prompt views of a cell (original / marked / preprocessed)
  to an OpenAI-compatible /chat/completions endpoint, directly or through
  the authenticating forwarding proxy (/api/llm)
- Validates the JSON reply against COURSE_FIELDS, filling defaults
- Post-processes every course: weeks re-decoded from raw_weeks, field
  whitespace normalization, major/class repair, building/room repair

Important rules:
- deterministic week decoding overrides the model's own week list
- failures are returned as SemanticResult.error and never cached
"""

from __future__ import annotations

import json
import logging
import re
import time
import uuid
from typing import Any, Dict, List, Optional

import requests

from schedulellm.cache import ResolutionCache
from schedulellm.config import LLMConfig
from schedulellm.location import merge_building_room, repair_building_room, standardize_location
from schedulellm.model import LOCATION_TBA, CourseRecord, RepairAnnotation, SemanticResult
from schedulellm.normalize import (
    build_prompt_views,
    normalize_no_spaces,
    normalize_spaces,
    strip_outer_parens,
    unify_line_breaks,
)
from schedulellm.parse import normalize_class_name, simplify_name
from schedulellm.weeks import MAX_WEEK, decode_weeks

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = """你是课程表单元格解析助手，负责从原始文本中提取课程信息，尤其是班级名称与上课地点。
只输出一个 JSON 对象，结构如下：
{
  "courses": [
    {
      "name": "课程名称，只含学科名，不含班级或地点",
      "weeks": [1, 2, 3],
      "raw_weeks": "1-16周",
      "location": "原文中的地点字符串",
      "building": "楼栋（保持原文写法）",
      "room": "教室号，必须含数字，如 203、A105、S103",
      "className": "班级名称，如 软件2101、21软件1班",
      "periodRange": "1-2",
      "teacher": "教师姓名",
      "nameSpan": [0, 4],
      "locationSpan": [10, 16]
    }
  ],
  "confidence": 0.9,
  "repairs": [
    {"field": "name", "from": "...", "to": "...", "reason": "...", "confidence": 0.9, "spans": [[0, 4]]}
  ]
}

输入是 JSON 字符串，字段为 original（原文，含 \\n）、marked（\\n 被替换为 ⏎）、
preprocessed（轻度合并后的文本）、lineBreaks（original 中 \\n 的位置）。

地点规则：
1. location 必须按 original 原文截取，不得补全、扩展或规范化（"一教" 不能写成 "第一教学楼"，"桂林洋一教" 不能写成 "桂林洋校区第一教学楼"）。
2. 只允许修正多余空格与全角/半角标点，不得添加原文没有的词（如 "校区"、"第一"）。
3. building 保持原文写法；无法可靠区分楼栋与教室号时 building 可为空，但 location 仍须保真。
4. room 必须包含数字。

周次规则：
1. weeks 必须展开为整数数组："1-16周" -> [1..16]。
2. "1-16周(单)" 或 "1-16单" 只取单周；"2-16周(双)" 或 "2-16双" 只取双周。
3. 多段周次："1-8,11-16周" -> [1..8, 11..16]。
4. raw_weeks 原样保留周次字符串。

班级规则：
1. 只有明确描述学生群体时才输出 className（通常含 "班"、"级"、"届"、年级数字或班号）。
2. 以 "专业" 结尾且没有年级、班号、届等标识的片段不是班级，应与相邻片段合并为课程名（如 "电气工程及其自动化专业导论"）。
3. 去掉 className 外层括号；多个班级用逗号分隔（"软件2101,软件2102"）。

换行修复规则：
1. 课程名被 ⏎ 断开时，可在不新增字符的前提下合并片段，且合并结果不得跨越 "/"、"周"、"节"、"班" 等字段边界。
2. 地点被 ⏎ 断开时可合并（"桂林\\n洋工程S308" -> "桂林洋工程S308"），合并后必须仍能匹配含数字的教室号。
3. 每次修复都写入 repairs 并给出 confidence；confidence 低于 0.8 时不要修复。
4. nameSpan 与 locationSpan 为 original 中的 [start, end) 下标。

通用规则：
1. 一个单元格可能包含多门课程，全部列出；没有课程时返回空数组。
2. 支持 "数学 1-16周 101室" 这类简写，以及用 "◇" 分隔字段的写法。
3. 有节次时提取 periodRange（如 "(1-2节)" -> "1-2"）。
4. 不要输出 Markdown 代码块，只输出纯 JSON。"""


# Expected course fields with their defaults. Anything else the model
# returns is ignored.
COURSE_FIELDS: Dict[str, Any] = {
    "name": "",
    "weeks": [],
    "raw_weeks": "",
    "location": "",
    "building": "",
    "room": "",
    "className": "",
    "periodRange": "",
    "teacher": "",
    "nameSpan": None,
    "locationSpan": None,
}

GENERIC_NAME_SUFFIXES = ("导论", "概论", "基础", "原理", "实验", "实训", "课程设计")

MAJOR_REPAIR_REASON = "“专业”前缀被误判为班级，合并为完整课程名"


class SemanticParseError(Exception):
    pass


class TransportError(SemanticParseError):
    """Network failure or non-2xx reply from the completion service."""


class MalformedResponseError(SemanticParseError):
    """Reply body is not JSON or lacks a courses array."""


# ---------------------------------------------------------------------------
# Response validation
# ---------------------------------------------------------------------------


def _strip_code_fence(content: str) -> str:
    s = content.strip()
    s = re.sub(r"^```(?:json)?", "", s)
    s = re.sub(r"```$", "", s)
    return s.strip()


def _as_span(value: Any) -> Optional[List[int]]:
    if isinstance(value, (list, tuple)) and len(value) == 2 and all(isinstance(x, int) for x in value):
        return [value[0], value[1]]
    return None


def _coerce_course(raw: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(raw, dict):
        return None

    course: Dict[str, Any] = {}
    for key, default in COURSE_FIELDS.items():
        value = raw.get(key, default)
        if key == "weeks":
            value = [w for w in value if isinstance(w, int) and not isinstance(w, bool)] if isinstance(value, list) else []
        elif key in ("nameSpan", "locationSpan"):
            value = _as_span(value)
        elif value is None:
            value = default
        elif not isinstance(value, str):
            value = str(value)
        course[key] = value
    course["repairs"] = []
    return course


def _coerce_repair(raw: Any) -> Optional[RepairAnnotation]:
    if not isinstance(raw, dict):
        return None
    spans = [tuple(s) for s in (raw.get("spans") or []) if _as_span(s)]
    try:
        confidence = float(raw.get("confidence", 0) or 0)
    except (TypeError, ValueError):
        confidence = 0.0
    return RepairAnnotation(
        field=str(raw.get("field", "") or ""),
        from_value=str(raw.get("from", "") or ""),
        to_value=str(raw.get("to", "") or ""),
        reason=str(raw.get("reason", "") or ""),
        confidence=confidence,
        spans=spans,
    )


def _clamp_confidence(value: Any) -> float:
    try:
        c = float(value)
    except (TypeError, ValueError):
        return 0.0
    return min(1.0, max(0.0, c))


def parse_reply(body: Any) -> Dict[str, Any]:
    """
    Extract and validate the extraction JSON from a chat-completion body.

    Raises MalformedResponseError when the content is not a JSON object with
    a `courses` array.
    """
    try:
        content = body["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        raise MalformedResponseError("Response has no choices[0].message.content")

    text = _strip_code_fence(str(content or ""))
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedResponseError(f"Invalid JSON response from LLM: {e.msg}") from e

    if not isinstance(data, dict) or not isinstance(data.get("courses"), list):
        raise MalformedResponseError("LLM response lacks a courses array")

    courses = [c for c in (_coerce_course(raw) for raw in data["courses"]) if c is not None]
    repairs = [r for r in (_coerce_repair(raw) for raw in data.get("repairs") or []) if r is not None]
    return {
        "courses": courses,
        "confidence": _clamp_confidence(data.get("confidence", 0)),
        "repairs": repairs,
    }


# ---------------------------------------------------------------------------
# Post-processing
# ---------------------------------------------------------------------------


def _normalize_fields(course: Dict[str, Any]) -> None:
    course["className"] = strip_outer_parens(normalize_no_spaces(course["className"]))
    course["room"] = normalize_no_spaces(course["room"])
    for key in ("building", "location", "name", "teacher"):
        course[key] = normalize_spaces(course[key])


def repair_major_as_class(course: Dict[str, Any], raw_text: str) -> Optional[RepairAnnotation]:
    """
    Merge "X专业" back into the name when the model split
    "电气工程及其自动化专业导论" into className="…专业" and name="导论".

    Requires the merged text to appear literally in the line-break-free
    original; OCR noise that breaks the exact match is left alone.
    """
    name = course.get("name") or ""
    class_name = course.get("className") or ""

    if name not in GENERIC_NAME_SUFFIXES:
        return None
    if not class_name.endswith("专业") or re.search(r"[班级届]", class_name) or re.search(r"\d", class_name):
        return None

    merged = class_name + name
    original = unify_line_breaks(raw_text)
    if merged not in original.replace("\n", ""):
        return None

    idx_c = original.find(class_name)
    idx_n = original.find(name, idx_c) if idx_c >= 0 else original.find(name)

    course["name"] = merged
    course["className"] = ""
    spans: List[tuple] = []
    if idx_c >= 0 and idx_n >= 0:
        course["nameSpan"] = [idx_c, idx_n + len(name)]
        spans = [(idx_c, idx_c + len(class_name)), (idx_n, idx_n + len(name))]

    return RepairAnnotation(
        field="name",
        from_value=name,
        to_value=merged,
        reason=MAJOR_REPAIR_REASON,
        confidence=0.9,
        spans=spans,
    )


def postprocess_course(course: Dict[str, Any], raw_text: str) -> Dict[str, Any]:
    if course["raw_weeks"]:
        weeks = decode_weeks(course["raw_weeks"])
        if weeks:
            course["weeks"] = weeks

    _normalize_fields(course)

    repair = repair_major_as_class(course, raw_text)
    if repair is not None:
        logger.debug("name merge repair: %r -> %r", repair.from_value, repair.to_value)
        course["repairs"].append(repair)

    building, room = repair_building_room(course["building"], course["room"])
    if (building, room) != (course["building"], course["room"]):
        logger.debug("location repair: %r/%r -> %r/%r", course["building"], course["room"], building, room)
        course["building"], course["room"] = building, room

    return course


def hydrate(course: Dict[str, Any], cell_text: str, confidence: float) -> CourseRecord:
    """
    Turn one post-processed course dict into a CourseRecord.
    """
    if course.get("building") and course.get("room"):
        seed = merge_building_room(course["building"], course["room"])
    else:
        seed = course.get("location") or ""
    info = standardize_location(seed)

    weeks = course.get("weeks") or decode_weeks(course.get("raw_weeks") or "")
    weeks = sorted({w for w in weeks if 0 < w <= MAX_WEEK})

    span = course.get("nameSpan")
    loc_span = course.get("locationSpan")
    return CourseRecord(
        name=simplify_name(course.get("name") or ""),
        raw_name=course.get("name") or "",
        weeks=weeks,
        weeks_raw=course.get("raw_weeks") or "",
        location=info.location or LOCATION_TBA,
        building=info.building,
        room=info.room,
        class_name=normalize_class_name(course.get("className") or ""),
        period_range=course.get("periodRange") or "",
        teacher=course.get("teacher") or "",
        confidence=confidence,
        raw_str=cell_text,
        source="llm",
        name_span=tuple(span) if span else None,
        location_span=tuple(loc_span) if loc_span else None,
        repairs=list(course.get("repairs") or []),
    )


# ---------------------------------------------------------------------------
# Service client
# ---------------------------------------------------------------------------


class SemanticParser:
    """
    Client for the completion service with a per-run result cache.
    """

    def __init__(
        self,
        config: LLMConfig,
        session: Optional[requests.Session] = None,
        cache: Optional[ResolutionCache[SemanticResult]] = None,
    ):
        self.config = config
        self.session = session or requests.Session()
        self.cache: ResolutionCache[SemanticResult] = cache if cache is not None else ResolutionCache()

    def check_health(self) -> bool:
        """Direct mode needs an API key; proxy mode authenticates itself."""
        return bool(self.config.api_key) or self.config.is_proxy

    def clear_cache(self) -> None:
        self.cache.clear()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        if self.config.is_proxy:
            headers["X-Timestamp"] = str(int(time.time() * 1000))
            headers["X-Nonce"] = uuid.uuid4().hex
        return headers

    def build_request(self, raw_text: str) -> Dict[str, Any]:
        return {
            "model": self.config.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_prompt_views(raw_text).to_payload()},
            ],
            "temperature": self.config.temperature,
        }

    def _post(self, body: Dict[str, Any]) -> Any:
        try:
            resp = self.session.post(
                self.config.endpoint,
                json=body,
                headers=self._headers(),
                timeout=self.config.timeout,
            )
        except requests.RequestException as e:
            raise TransportError(f"{type(e).__name__}: {e}") from e

        if not resp.ok:
            try:
                detail = json.dumps(resp.json(), ensure_ascii=False)
            except ValueError:
                detail = resp.text[:200]
            raise TransportError(f"API Error: {resp.status_code} - {detail}")

        try:
            return resp.json()
        except ValueError as e:
            raise MalformedResponseError("Response body is not JSON") from e

    def parse(self, raw_text: str) -> SemanticResult:
        """
        Resolve one cell. Transport and format failures come back as
        `SemanticResult.error`; other exceptions propagate to the caller.
        """
        if not raw_text or not raw_text.strip():
            return SemanticResult(courses=[], confidence=1.0)

        cached = self.cache.get(self.config.model, raw_text)
        if cached is not None:
            logger.debug("semantic cache hit (model=%s)", self.config.model)
            return cached

        t0 = time.monotonic()
        try:
            reply = parse_reply(self._post(self.build_request(raw_text)))
        except SemanticParseError as e:
            logger.error("LLM parsing failed after %.1fs: %s", time.monotonic() - t0, e)
            return SemanticResult(courses=[], confidence=0.0, error=str(e))

        courses = [postprocess_course(c, raw_text) for c in reply["courses"]]
        repairs = list(reply["repairs"])
        for c in courses:
            repairs.extend(c["repairs"])

        result = SemanticResult(courses=courses, confidence=reply["confidence"], repairs=repairs)
        logger.debug(
            "semantic parse: %d courses, confidence=%.2f, %.1fs",
            len(courses), result.confidence, time.monotonic() - t0,
        )

        self.cache.put(self.config.model, raw_text, result)
        return result

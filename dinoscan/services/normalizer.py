# dinoscan/services/normalizer.py
"""
Turn whatever the upstream model API sent back into the gateway's fixed contract.

Observed envelope shapes:
  - chat completion:   {"choices": [{"message": {"content": "..."}}]}
  - responses API:     {"output": [{"content": [{"type": "output_text", "text": "..."}]}],
                        "output_text": "..."}
  - reasoning models:  {"output": [{"type": "reasoning", "summary": [{"text": "..."}]}]}

Each probe treats missing keys as "nothing here" rather than as an error.
"""
from __future__ import annotations

import json
import logging
import math
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

from dinoscan.config import settings
from dinoscan.errors import EmptyModelText, ModelNotJSON
from dinoscan.schemas.analysis import AnalysisResult, Insight

logger = logging.getLogger(__name__)

_JSON_SPAN = re.compile(r"\{[\s\S]*\}")

RARITY_ALIASES = {
    "普通": "普通",
    "稀有": "稀有",
    "传说": "传说",
    "common": "普通",
    "rare": "稀有",
    "legendary": "传说",
}


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _text_of(part: Any) -> Optional[str]:
    if isinstance(part, str):
        return part
    if not isinstance(part, dict):
        return None
    for key in ("text", "content"):
        value = part.get(key)
        if isinstance(value, str):
            return value
    return None


def _chat_content(envelope: Dict[str, Any]) -> List[str]:
    choices = _as_list(envelope.get("choices"))
    if not choices or not isinstance(choices[0], dict):
        return []
    message = choices[0].get("message")
    if not isinstance(message, dict):
        return []
    content = message.get("content")
    if isinstance(content, str):
        return [content]
    # Some OpenAI-compatible backends return content parts instead of a string.
    return [t for t in (_text_of(p) for p in _as_list(content)) if t is not None]


def _output_text(envelope: Dict[str, Any]) -> List[str]:
    value = envelope.get("output_text")
    if isinstance(value, str):
        return [value]
    return [t for t in (_text_of(p) for p in _as_list(value)) if t is not None]


def _output_content(envelope: Dict[str, Any]) -> List[str]:
    out: List[str] = []
    for item in _as_list(envelope.get("output")):
        if not isinstance(item, dict):
            continue
        for part in _as_list(item.get("content")):
            text = _text_of(part)
            if text is not None:
                out.append(text)
    return out


def _reasoning_summary(envelope: Dict[str, Any]) -> List[str]:
    out: List[str] = []
    for item in _as_list(envelope.get("output")):
        if not isinstance(item, dict):
            continue
        for part in _as_list(item.get("summary")):
            if isinstance(part, dict) and isinstance(part.get("text"), str):
                out.append(part["text"])
    return out


# Tried in order; all answer probes contribute, the summary probe only when they found nothing.
ANSWER_PROBES: Tuple[Tuple[str, Callable[[Dict[str, Any]], List[str]]], ...] = (
    ("chat-content", _chat_content),
    ("output-text", _output_text),
    ("output-content", _output_content),
)
FALLBACK_PROBE: Tuple[str, Callable[[Dict[str, Any]], List[str]]] = ("reasoning-summary", _reasoning_summary)


def _collect(envelope: Dict[str, Any], probes) -> List[str]:
    fragments: List[str] = []
    for _name, probe in probes:
        for fragment in probe(envelope):
            fragment = fragment.strip()
            # output_text usually duplicates output[].content; keep one copy.
            if fragment and fragment not in fragments:
                fragments.append(fragment)
    return fragments


def extract_text(envelope: Any) -> str:
    """Return every answer fragment in the envelope joined by newlines."""
    if not isinstance(envelope, dict):
        raise EmptyModelText(envelope)

    fragments = _collect(envelope, ANSWER_PROBES)
    if not fragments:
        fragments = _collect(envelope, (FALLBACK_PROBE,))
        if fragments:
            logger.warning("No final answer text upstream; falling back to reasoning summary")

    text = "\n".join(fragments).strip()
    if not text:
        raise EmptyModelText(envelope)
    return text


def extract_json(text: str) -> Any:
    """Parse model text as JSON, or the first {...} span inside it."""
    t = (text or "").strip()
    try:
        return json.loads(t)
    except (ValueError, RecursionError):
        pass

    m = _JSON_SPAN.search(t)
    if m:
        try:
            return json.loads(m.group(0))
        except (ValueError, RecursionError):
            pass
    raise ModelNotJSON(t[: settings.MODEL_TEXT_CHARS])


def _text_field(data: Dict[str, Any], key: str, default: str) -> str:
    value = data.get(key)
    if not value:
        return default
    if isinstance(value, (list, tuple)):
        value = "、".join(str(v) for v in value if v)
    return str(value).strip() or default


def _rarity(value: Any) -> str:
    if not isinstance(value, str):
        return "普通"
    return RARITY_ALIASES.get(value.strip().lower(), "普通")


def _confidence(value: Any, default: float) -> float:
    if isinstance(value, bool) or not value:
        return default
    if isinstance(value, str):
        value = value.strip().rstrip("%").strip()
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number):
        return default
    return max(0.0, min(100.0, number))


def normalize_analysis(data: Any) -> AnalysisResult:
    """Fill every AnalysisResult field, repairing absent or unusable values."""
    if not isinstance(data, dict):
        raise ModelNotJSON(json.dumps(data, ensure_ascii=False)[: settings.MODEL_TEXT_CHARS])

    defaults = AnalysisResult()
    return AnalysisResult(
        Name=_text_field(data, "Name", defaults.Name),
        Era=_text_field(data, "Era", defaults.Era),
        Classification=_text_field(data, "Classification", defaults.Classification),
        Length=_text_field(data, "Length", defaults.Length),
        Rarity=_rarity(data.get("Rarity")),
        Confidence=_confidence(data.get("Confidence"), defaults.Confidence),
        Note=_text_field(data, "Note", defaults.Note),
    )


def normalize_insight(text: str) -> Dict[str, Any]:
    """Text mode passes model JSON objects through; prose is wrapped as {title, content}."""
    try:
        data = extract_json(text)
    except ModelNotJSON:
        data = None
    if isinstance(data, dict):
        return data
    return Insight(title="分析结果", content=text.strip()).model_dump()

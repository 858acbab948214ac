# dinoscan/services/prompts.py
from __future__ import annotations

import json
from typing import Any, Dict, Optional

ANALYSIS_PROMPT = (
    "你是一位资深的古生物学家。请识别这张照片中的恐龙化石或骨骼。"
    "即使照片略有模糊或光线不足，也请基于可见特征给出最可能的专业推测。"
    "请提供：1.中文名称 2.地质年代 3.分类 4.预估长度 5.稀有度（普通、稀有、或传说） "
    "6.置信度(0-100) 7.一段2句简短的专业笔记。"
    "请务必使用简体中文回答。"
    '只输出 JSON：{ "Name":"名称","Era":"年代","Classification":"分类","Length":"长度",'
    '"Rarity":"普通/稀有/传说","Confidence":95,"Note":"两句简短专业笔记" }。'
    "注意：禁止输出除 JSON 外的任何文本。"
)

TEXT_MODE_SUFFIX = "请只输出 JSON，不要输出任何额外文本。"


def build_text_prompt(prompt: str, context: Optional[Dict[str, Any]] = None) -> str:
    parts = [prompt.strip()]
    if context:
        parts.append("上下文：" + json.dumps(context, ensure_ascii=False, sort_keys=True))
    parts.append(TEXT_MODE_SUFFIX)
    return "\n\n".join(parts)

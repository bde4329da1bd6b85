"""프롬프트 빌더: 번역, 핵심 요약, 상세 요약.

입력 길이는 호출자가 넘긴 max_chars 이내로 잘라낸다.
"""

from __future__ import annotations

import re
from typing import List

LANGUAGE_NAMES = {
    "ko": "한국어",
    "ja": "일본어",
    "en": "영어",
    "zh": "중국어",
}

_BULLET_PREFIX_RE = re.compile(r"^\s*(?:[-*•·]|\d+[.)])\s*")


def build_translate_messages(text: str, target_language: str = "ko", *, max_chars: int = 1600) -> List[dict]:
    target = LANGUAGE_NAMES.get(target_language, target_language)
    system = (
        f"당신은 전문 뉴스 번역가입니다. 주어진 텍스트를 {target}로 자연스럽게 번역하세요.\n"
        "설명이나 따옴표 없이 번역문만 출력하세요."
    )
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": text[:max_chars]},
    ]


def build_summary_messages(text: str, points: int = 5, target_language: str = "ko", *, max_chars: int = 1600) -> List[dict]:
    target = LANGUAGE_NAMES.get(target_language, target_language)
    system = (
        f"당신은 뉴스 요약 전문가입니다. 기사를 {points}개 이하의 핵심 bullet로 {target} 요약하세요.\n"
        "한 줄에 하나의 bullet만 쓰세요."
    )
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": text[:max_chars]},
    ]


def build_detail_messages(title: str, text: str, target_language: str = "ko", *, max_chars: int = 2000) -> List[dict]:
    target = LANGUAGE_NAMES.get(target_language, target_language)
    return [
        {
            "role": "system",
            "content": f"당신은 뉴스 분석 전문가입니다. 주어진 뉴스를 객관적이고 상세히 {target}로 요약하세요.",
        },
        {"role": "user", "content": f"제목: {title}\n내용: {text[:max_chars]}"},
    ]


def parse_bullets(content: str, points: int) -> List[str]:
    """Split model output into at most ``points`` bullet strings."""
    bullets = []
    for line in content.splitlines():
        cleaned = _BULLET_PREFIX_RE.sub("", line).strip()
        if cleaned:
            bullets.append(cleaned)
    return bullets[:points]

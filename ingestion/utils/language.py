"""Script-ratio language heuristics.

언어 판별은 NLP 의존성 없이 문자 집합 비율로만 수행한다. 결과는 ISO 639-1
코드이며 판단할 수 없으면 ``und``를 돌려준다.
"""

from __future__ import annotations

import re
from typing import Dict, Pattern

_SCRIPTS: Dict[str, Pattern[str]] = {
    "ko": re.compile(r"[가-힣ᄀ-ᇿ㄰-㆏]"),
    "ja": re.compile(r"[぀-ゟ゠-ヿ]"),
    "zh": re.compile(r"[一-鿿]"),
    "ru": re.compile(r"[Ѐ-ӿ]"),
    "ar": re.compile(r"[؀-ۿ]"),
    "en": re.compile(r"[A-Za-z]"),
}

_WHITESPACE = re.compile(r"\s+")

DEFAULT_THRESHOLD = 0.4


def script_ratio(text: str, language: str) -> float:
    """Share of non-whitespace characters that belong to ``language``'s script."""
    pattern = _SCRIPTS.get(language)
    if pattern is None or not text:
        return 0.0
    compact = _WHITESPACE.sub("", text)
    if not compact:
        return 0.0
    hits = len(pattern.findall(compact))
    if language == "ja":
        # Japanese text mixes kana with kanji
        hits += len(_SCRIPTS["zh"].findall(compact))
    return hits / len(compact)


def is_language(text: str, language: str, threshold: float = DEFAULT_THRESHOLD) -> bool:
    return script_ratio(text, language) > threshold


def detect_language(text: str, threshold: float = DEFAULT_THRESHOLD) -> str:
    if not text or not text.strip():
        return "und"
    # kana wins over kanji so Japanese is not reported as Chinese
    if _SCRIPTS["ja"].search(text) and is_language(text, "ja", threshold):
        return "ja"
    for language in ("ko", "zh", "ru", "ar", "en"):
        if is_language(text, language, threshold):
            return language
    return "und"


def normalize_language(value: object) -> str:
    """Trim provider language tags (``en-US``, ``ko_KR``) to two letters."""
    if not value:
        return "und"
    code = str(value).strip().lower().replace("_", "-").split("-")[0]
    if len(code) < 2 or not code.isalpha():
        return "und"
    return code[:2]

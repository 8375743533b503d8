"""
Heuristic article categorizer.

Classification runs two ordered rule lists.  Rules are ``(predicate,
category)`` pairs evaluated in sequence and the first matching rule wins, so
the order of ``HINT_RULES`` and ``KEYWORD_RULES`` is part of the contract:
an article mentioning both "경제" and "스포츠" is business, not sports.

An article that matches nothing is ambiguous and gets ``None``; such articles
are only listed under the catch-all filter.
"""
import json
import re
from functools import lru_cache
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple

from ..models.schemas import Category

Predicate = Callable[[str], bool]


@lru_cache(maxsize=None)
def _word_pattern(keyword: str) -> "re.Pattern[str]":
    return re.compile(rf"(?<![a-z0-9]){re.escape(keyword)}(?![a-z0-9])")


def contains_keyword(text: str, keyword: str) -> bool:
    """Substring test; short ASCII keywords ("ai", "it") must stand alone as words."""
    if keyword.isascii() and len(keyword) <= 3:
        return _word_pattern(keyword).search(text) is not None
    return keyword in text


def any_of(keywords: Sequence[str]) -> Predicate:
    def predicate(text: str) -> bool:
        return any(contains_keyword(text, kw) for kw in keywords)
    return predicate


# ---------------------------------------------------------------------------
# Phase 1: source-provided category hints
# ---------------------------------------------------------------------------

HINT_RULES: List[Tuple[Predicate, Category]] = [
    (any_of(["business", "economy", "economic", "finance", "market", "money", "경제", "비즈니스", "금융", "산업"]),
     Category.BUSINESS),
    (any_of(["tech", "it", "digital", "테크", "기술", "디지털"]), Category.TECHNOLOGY),
    (any_of(["science", "environment", "space", "과학", "환경"]), Category.SCIENCE),
    (any_of(["health", "medical", "medicine", "wellness", "건강", "의료"]), Category.HEALTH),
    (any_of(["sport", "football", "soccer", "스포츠"]), Category.SPORTS),
    (any_of(["entertainment", "culture", "arts", "music", "film", "연예", "문화", "엔터"]), Category.ENTERTAINMENT),
]


# ---------------------------------------------------------------------------
# Phase 2: keyword groups over title + description
# ---------------------------------------------------------------------------

BUSINESS_KEYWORDS = [
    "business", "economy", "economic", "market", "stock", "trade", "finance", "financial",
    "investor", "investment", "earnings", "revenue", "inflation", "interest rate", "bank",
    "경제", "증시", "주식", "코스피", "코스닥", "주가", "금리", "환율", "물가", "부동산", "아파트값",
    "실적", "매출", "영업이익", "수출", "수입", "무역", "투자", "기업", "금융", "은행", "채권",
    "경기 침체", "경기 부양", "경기 둔화", "재테크", "산업",
]

TECHNOLOGY_KEYWORDS = [
    "technology", "tech", "ai", "artificial intelligence", "software", "computer", "digital",
    "smartphone", "semiconductor", "chip", "startup", "cyber", "internet", "robot", "app ",
    "인공지능", "반도체", "소프트웨어", "스마트폰", "디지털", "플랫폼", "로봇", "챗gpt", "클라우드",
    "데이터", "해킹", "사이버", "통신", "5g", "메타버스", "자율주행", "스타트업", "앱",
]

SCIENCE_KEYWORDS = [
    "science", "research", "study", "scientist", "discovery", "space", "nasa", "climate",
    "physics", "biology", "astronomy",
    "과학", "연구", "연구진", "우주", "천문", "기후", "발견", "실험", "논문", "누리호", "생물", "물리",
]

HEALTH_KEYWORDS = [
    "health", "medical", "hospital", "doctor", "disease", "vaccine", "covid", "virus", "cancer",
    "patient", "mental health",
    "건강", "의료", "병원", "의사", "질병", "백신", "코로나", "감염", "바이러스", "암 ", "환자",
    "치료", "보건", "의대", "전공의", "독감",
]

SPORTS_KEYWORDS = [
    "sport", "football", "basketball", "soccer", "baseball", "olympic", "championship", "tennis",
    "golf", "league", "world cup",
    "스포츠", "축구", "야구", "농구", "배구", "골프", "올림픽", "월드컵", "테니스", "kbo", "k리그",
    "프리미어리그", "메이저리그", "국가대표",
]

# "경기" means both "match" and "economic conditions"; it only signals
# sports next to one of these terms.
SPORTS_MATCH_TOKEN = "경기"
SPORTS_CONTEXT_KEYWORDS = [
    "선수", "감독", "득점", "골", "승리", "패배", "리그", "구단", "우승", "시즌", "홈런", "경기장", "결승",
]

ENTERTAINMENT_KEYWORDS = [
    "entertainment", "movie", "music", "celebrity", "film", "actor", "actress", "hollywood",
    "album", "concert", "netflix",
    "연예", "영화", "음악", "배우", "가수", "아이돌", "드라마", "예능", "콘서트", "앨범", "케이팝",
    "k-pop", "방송", "넷플릭스",
]

WORLD_KEYWORDS = [
    "world", "international", "global", "war", "united nations", "foreign", "diplomat",
    "국제", "세계", "외교", "전쟁", "유엔", "해외", "정상회담", "미국", "중국", "일본", "러시아",
    "우크라이나", "이스라엘", "유럽",
]


def _is_sports(text: str) -> bool:
    if any_of(SPORTS_KEYWORDS)(text):
        return True
    return SPORTS_MATCH_TOKEN in text and any_of(SPORTS_CONTEXT_KEYWORDS)(text)


KEYWORD_RULES: List[Tuple[Predicate, Category]] = [
    (any_of(BUSINESS_KEYWORDS), Category.BUSINESS),
    (any_of(TECHNOLOGY_KEYWORDS), Category.TECHNOLOGY),
    (any_of(SCIENCE_KEYWORDS), Category.SCIENCE),
    (any_of(HEALTH_KEYWORDS), Category.HEALTH),
    (_is_sports, Category.SPORTS),
    (any_of(ENTERTAINMENT_KEYWORDS), Category.ENTERTAINMENT),
    (any_of(WORLD_KEYWORDS), Category.WORLD),
]


def normalize_hint(hint: Any) -> str:
    """Reduce a feed's category field (string, list, dict) to one lowercase string."""
    if hint is None:
        return ""
    if isinstance(hint, (list, tuple)):
        return normalize_hint(hint[0]) if hint else ""
    if isinstance(hint, dict):
        # feedparser tag dicts carry the label under "term"
        if "term" in hint:
            return str(hint["term"] or "").lower()
        return json.dumps(hint, ensure_ascii=False).lower()
    return str(hint).lower()


def first_match(rules: Iterable[Tuple[Predicate, Category]], text: str) -> Optional[Category]:
    for predicate, category in rules:
        if predicate(text):
            return category
    return None


def categorize(title: str, description: str, source_hint: Any = None) -> Optional[Category]:
    """Classify an article; ``None`` means ambiguous."""
    if source_hint:
        hinted = first_match(HINT_RULES, normalize_hint(source_hint))
        if hinted is not None:
            return hinted

    text = f"{title or ''} {description or ''}".lower()
    return first_match(KEYWORD_RULES, text)


def filter_by_category(articles, category: Optional[str]):
    """Apply a category filter; uncategorized articles only appear under "all"."""
    wanted = Category.parse(category) if category else Category.ALL
    if wanted is None or wanted == Category.ALL:
        return list(articles)
    return [a for a in articles if a.category == wanted]

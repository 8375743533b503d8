"""
Merged-list deduplication.

Articles are dropped when their id was already seen, when their non-empty
normalized title matches a kept one exactly, or when their title is within the edit
distance similarity threshold of a kept title.  The first occurrence always
wins and relative order is preserved.
"""
import logging
import re
from typing import Dict, List, Sequence

from rapidfuzz.distance import Levenshtein

from ..models.schemas import Article

logger = logging.getLogger(__name__)

DEFAULT_SIMILARITY_THRESHOLD = 0.8

_NON_WORD_RE = re.compile(r"[^\w\s가-힣]")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_title(title: str) -> str:
    """Lowercase, drop punctuation (keeping word chars and Hangul), collapse whitespace."""
    cleaned = _NON_WORD_RE.sub("", (title or "").lower())
    return _WHITESPACE_RE.sub(" ", cleaned).strip()


def calculate_similarity(a: str, b: str) -> float:
    """``(max_len - edit_distance) / max_len``; two empty strings are identical."""
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    return (max_len - Levenshtein.distance(a, b)) / max_len


def _length_gap_exceeds(a: str, b: str, threshold: float) -> bool:
    # The edit distance is at least the length difference, so when the gap
    # alone exceeds 1 - threshold the similarity cannot reach the threshold.
    max_len = max(len(a), len(b))
    if max_len == 0:
        return False
    return abs(len(a) - len(b)) / max_len > 1 - threshold


def deduplicate_articles(
    articles: Sequence[Article],
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
) -> List[Article]:
    unique: List[Article] = []
    seen_ids = set()
    seen_normalized: Dict[str, str] = {}
    kept_titles: List[str] = []

    for article in articles:
        if article.id in seen_ids:
            continue

        normalized = normalize_title(article.title)
        if normalized and normalized in seen_normalized:
            continue

        title = (article.title or "").lower()
        duplicate_of = None
        for kept in kept_titles:
            if _length_gap_exceeds(title, kept, similarity_threshold):
                continue
            similarity = calculate_similarity(title, kept)
            if similarity >= similarity_threshold:
                duplicate_of = kept
                logger.debug(f"Duplicate detected ({similarity:.0%} similar): '{article.title}' ~ '{kept}'")
                break
        if duplicate_of is not None:
            continue

        unique.append(article)
        seen_ids.add(article.id)
        seen_normalized[normalized] = article.title
        kept_titles.append(title)

    return unique

"""
Search-query language helpers: Hangul detection and Korean-to-English
translation through the Naver Cloud Papago NMT API.
"""
import logging
import re
from dataclasses import dataclass
from typing import Optional

import aiohttp

from ..core.config import settings

logger = logging.getLogger(__name__)

PAPAGO_URL = "https://papago.apigw.ntruss.com/nmt/v1/translation"

_KOREAN_RE = re.compile(r"[가-힣ㄱ-ㅎㅏ-ㅣ]")


def contains_korean(text: str) -> bool:
    return bool(_KOREAN_RE.search(text or ""))


@dataclass
class SearchQuery:
    original: str
    is_korean: bool
    translated: Optional[str] = None

    def to_json(self):
        return {"original": self.original, "translated": self.translated, "isKorean": self.is_korean}


async def translate_to_english(text: str, timeout: float = 5.0) -> str:
    """Translate Korean ``text`` to English, returning ``text`` unchanged on any failure."""
    if not settings.has_papago_credentials:
        logger.info("Naver Cloud credentials not found; skipping translation")
        return text

    headers = {
        "X-NCP-APIGW-API-KEY-ID": settings.NAVER_CLOUD_CLIENT_ID,
        "X-NCP-APIGW-API-KEY": settings.NAVER_CLOUD_CLIENT_SECRET,
    }
    data = {"source": "ko", "target": "en", "text": text}

    try:
        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as session:
            async with session.post(PAPAGO_URL, headers=headers, data=data) as resp:
                if resp.status != 200:
                    error_text = await resp.text()
                    logger.warning(f"Papago API error {resp.status}: {error_text}")
                    return text
                payload = await resp.json()
    except Exception as e:
        logger.warning(f"Translation failed for '{text}': {e}")
        return text

    translated = (((payload or {}).get("message") or {}).get("result") or {}).get("translatedText")
    if translated:
        logger.info(f"Translated '{text}' to '{translated}'")
        return translated
    logger.warning(f"Translation response did not contain translatedText: {payload}")
    return text


async def process_search_query(query: str) -> SearchQuery:
    """Detect the query language and attach an English translation for Korean queries."""
    if not contains_korean(query):
        return SearchQuery(original=query, is_korean=False)

    translated = await translate_to_english(query)
    return SearchQuery(
        original=query,
        is_korean=True,
        translated=translated if translated != query else None,
    )

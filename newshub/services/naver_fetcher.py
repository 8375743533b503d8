"""
Domestic news via the Naver search API.
"""
import asyncio
import html
import logging
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional

import aiohttp

from ..core.config import settings
from ..models.schemas import Article, Region
from ..utils.hashing import generate_news_id
from .categorizer import categorize
from .image_extractor import fetch_og_image

logger = logging.getLogger(__name__)

NAVER_NEWS_URL = "https://openapi.naver.com/v1/search/news.json"
NAVER_SOURCE_NAME = "네이버 뉴스"
SEARCH_TIMEOUT_SECONDS = 10
MAX_DISPLAY = 100

_TAG_RE = re.compile(r"</?b>", re.IGNORECASE)

ImageResolver = Callable[[str], Awaitable[Optional[str]]]


def clean_markup(text: str) -> str:
    """Strip the search API's highlight tags and HTML entities."""
    return html.unescape(_TAG_RE.sub("", text or "")).strip()


class NaverNewsFetcher:
    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        image_resolver: Optional[ImageResolver] = None,
    ):
        self.client_id = client_id if client_id is not None else settings.NAVER_CLIENT_ID
        self.client_secret = client_secret if client_secret is not None else settings.NAVER_CLIENT_SECRET
        self.image_resolver: ImageResolver = image_resolver or fetch_og_image
        self.session: Optional[aiohttp.ClientSession] = None

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=SEARCH_TIMEOUT_SECONDS))
        return self.session

    async def close(self):
        if self.session and not self.session.closed:
            await self.session.close()

    async def _search(self, query: str, display: int) -> List[Dict[str, Any]]:
        session = await self._get_session()
        params = {"query": query, "display": str(max(1, min(display, MAX_DISPLAY))), "sort": "date"}
        headers = {
            "X-Naver-Client-Id": self.client_id,
            "X-Naver-Client-Secret": self.client_secret,
        }
        async with session.get(NAVER_NEWS_URL, params=params, headers=headers) as resp:
            if resp.status != 200:
                text = await resp.text()
                logger.warning(f"Naver News API responded with status {resp.status}: {text}")
                return []
            data = await resp.json()
        return data.get("items", [])

    def item_to_article(self, item: Dict[str, Any]) -> Article:
        title = clean_markup(item.get("title", ""))
        description = clean_markup(item.get("description", ""))
        link = item.get("originallink") or item.get("link") or "#"

        return Article(
            id=generate_news_id(link, "naver"),
            title=title,
            description=description,
            link=link,
            pub_date=item.get("pubDate", ""),
            source=NAVER_SOURCE_NAME,
            image_url=None,
            category=categorize(title, description),
            region=Region.DOMESTIC,
        )

    async def fetch(
        self,
        query: str = "최신뉴스",
        display: int = 10,
        skip_images: bool = False,
        image_limit: Optional[int] = None,
    ) -> List[Article]:
        """Search Naver News for ``query``; returns [] when unconfigured or on error."""
        if not self.configured:
            logger.warning("Naver API credentials not found, skipping Naver news")
            return []

        try:
            logger.info(f"Fetching Naver News with query: {query}")
            items = await self._search(query, display)
        except Exception as e:
            logger.warning(f"Naver News fetch error for '{query}': {e}")
            return []

        articles = [self.item_to_article(item) for item in items]
        logger.info(f"Fetched {len(articles)} articles from Naver News for '{query}'")

        if not skip_images:
            limit = len(articles) if image_limit is None else image_limit
            targets = articles[:limit]
            results = await asyncio.gather(
                *(self.image_resolver(a.link) for a in targets),
                return_exceptions=True,
            )
            for article, result in zip(targets, results):
                if isinstance(result, str) and result:
                    article.image_url = result

        return articles

    async def fetch_by_queries(self, queries: List[str], display_per_query: int = 5) -> List[Article]:
        results = await asyncio.gather(*(self.fetch(q, display_per_query) for q in queries))
        return [article for batch in results for article in batch]

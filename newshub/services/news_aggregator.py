from collections import Counter
from datetime import datetime
from typing import List, Dict, Any, Optional, Sequence, Tuple
import asyncio
import logging

from ..core.config import settings
from ..core.database import NewsDatabase, db
from ..core.feeds import RSS_FEEDS, NAVER_DEFAULT_QUERIES, NAVER_RESULTS_PER_QUERY
from ..models.schemas import Article, Category, FeedDescriptor, Region
from ..utils.cache import TTLCache
from ..utils.dates import parse_pub_date
from ..utils.language import SearchQuery, process_search_query
from .deduplicator import deduplicate_articles
from .naver_fetcher import NaverNewsFetcher
from .rss_fetcher import RSSFetcher

logger = logging.getLogger(__name__)

INTERNATIONAL_CACHE_KEY = "international"
MAX_INTERNATIONAL_MATCHES = 10
KOREAN_DOMESTIC_RESULTS = 15
DEFAULT_DOMESTIC_RESULTS = 10


def sort_by_date(articles: Sequence[Article]) -> List[Article]:
    """Newest first; articles whose date cannot be parsed go last in their original order."""
    def key(article: Article) -> Tuple[int, float]:
        parsed: Optional[datetime] = parse_pub_date(article.pub_date)
        if parsed is None:
            return (1, 0.0)
        return (0, -parsed.timestamp())
    return sorted(articles, key=key)


def matches_query(article: Article, query: str) -> bool:
    needle = query.lower()
    return needle in (article.title or "").lower() or needle in (article.description or "").lower()


class NewsAggregator:
    """
    Collects articles from the RSS feeds and the Naver search API, removes
    duplicates, orders them by date and overlays categories assigned by the
    summarizer.  The international part of the latest listing is kept in a
    TTL cache so keyword search can filter it without refetching every feed.
    """

    def __init__(
        self,
        rss_fetcher: Optional[RSSFetcher] = None,
        naver_fetcher: Optional[NaverNewsFetcher] = None,
        feeds: Optional[List[FeedDescriptor]] = None,
        naver_queries: Optional[List[str]] = None,
        database: Optional[NewsDatabase] = None,
        international_cache: Optional[TTLCache] = None,
    ):
        self.rss_fetcher = rss_fetcher or RSSFetcher()
        self.naver_fetcher = naver_fetcher or NaverNewsFetcher()
        self.feeds = feeds if feeds is not None else RSS_FEEDS
        self.naver_queries = naver_queries if naver_queries is not None else NAVER_DEFAULT_QUERIES
        self.database = database or db
        self.international_cache: TTLCache = (
            international_cache if international_cache is not None
            else TTLCache(settings.INTERNATIONAL_CACHE_SECONDS)
        )

    async def close(self):
        await self.rss_fetcher.close()
        await self.naver_fetcher.close()

    async def _collect(self) -> List[Article]:
        tasks = [self.rss_fetcher.fetch(feed) for feed in self.feeds]
        labels = [feed.source for feed in self.feeds]
        if self.naver_queries:
            tasks.append(self.naver_fetcher.fetch_by_queries(self.naver_queries, NAVER_RESULTS_PER_QUERY))
            labels.append("Naver News")

        results = await asyncio.gather(*tasks, return_exceptions=True)

        articles: List[Article] = []
        for label, result in zip(labels, results):
            if isinstance(result, BaseException):
                logger.warning(f"Source {label} failed, contributing no articles: {result}")
                continue
            articles.extend(result)
        return articles

    async def apply_category_overlay(self, articles: List[Article]) -> None:
        """Replace heuristic categories with persisted ones that are valid enum members."""
        try:
            persisted = await self.database.get_categories([a.id for a in articles])
        except Exception as e:
            logger.warning(f"Category overlay skipped: {e}")
            return

        for article in articles:
            stored = persisted.get(article.id)
            if stored is None:
                continue
            category = Category.parse(stored)
            if category is None or category == Category.ALL:
                logger.debug(f"Ignoring persisted category '{stored}' for {article.id}")
                continue
            article.category = category

    async def get_news(self) -> List[Article]:
        collected = await self._collect()
        unique = deduplicate_articles(collected)
        logger.info(
            f"Articles before deduplication: {len(collected)}, after: {len(unique)} "
            f"(removed {len(collected) - len(unique)} duplicates)"
        )

        articles = sort_by_date(unique)
        await self.apply_category_overlay(articles)

        stats = Counter(a.category.value if a.category else "uncategorized" for a in articles)
        logger.info(f"Category distribution: {dict(stats)}")

        self.international_cache.set(
            INTERNATIONAL_CACHE_KEY,
            [a for a in articles if a.region == Region.INTERNATIONAL],
        )
        return articles

    async def get_international_articles(self) -> List[Article]:
        cached = self.international_cache.get(INTERNATIONAL_CACHE_KEY)
        if cached is None:
            logger.info("International cache miss, refreshing news listing")
            await self.get_news()
            cached = self.international_cache.get(INTERNATIONAL_CACHE_KEY) or []
        return cached

    async def search_international(self, query: str) -> List[Article]:
        articles = await self.get_international_articles()
        return [a for a in articles if matches_query(a, query)][:MAX_INTERNATIONAL_MATCHES]

    async def search(self, query: str, region: str = "all") -> Tuple[List[Article], SearchQuery]:
        info = await process_search_query(query)
        search_domestic = region in ("all", Region.DOMESTIC.value)
        search_international = region in ("all", Region.INTERNATIONAL.value)

        results: List[Article] = []
        if info.is_korean:
            if search_domestic:
                results.extend(await self.naver_fetcher.fetch(info.original, KOREAN_DOMESTIC_RESULTS))
            if search_international:
                results.extend(await self.search_international(info.translated or info.original))
        else:
            if search_international:
                results.extend(await self.search_international(info.original))
            if search_domestic:
                results.extend(await self.naver_fetcher.fetch(info.original, DEFAULT_DOMESTIC_RESULTS))

        logger.info(
            f"Search '{query}' (region={region}, korean={info.is_korean}, "
            f"translated={info.translated or 'no'}) found {len(results)} articles"
        )
        return sort_by_date(results), info


def filter_by_region(articles: Sequence[Article], region: Optional[str]) -> List[Article]:
    if not region or region == "all":
        return list(articles)
    return [a for a in articles if a.region.value == region]


def articles_to_json(articles: Sequence[Article]) -> List[Dict[str, Any]]:
    return [a.to_json() for a in articles]


# Global instance
news_aggregator = NewsAggregator()

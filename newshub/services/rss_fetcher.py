"""
RSS/Atom feed fetcher.

Downloads a feed with aiohttp, parses it with feedparser and normalizes the
first ``MAX_ITEMS_PER_FEED`` entries into ``Article`` records.  Any failure
affecting the whole feed yields an empty list; the aggregate news listing
never fails because a single outlet is down.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, List, Optional

import aiohttp
import feedparser

from ..core.config import settings
from ..models.schemas import Article, FeedDescriptor
from ..utils.cache import TTLCache
from ..utils.hashing import generate_news_id
from .categorizer import categorize
from .image_extractor import fetch_og_image

logger = logging.getLogger(__name__)

MAX_ITEMS_PER_FEED = 10
FEED_TIMEOUT_SECONDS = 15
USER_AGENT = "Mozilla/5.0 (compatible; NewsBot/1.0)"

ImageResolver = Callable[[str], Awaitable[Optional[str]]]


class FeedUnavailableError(Exception):
    """Raised when a feed cannot be downloaded or parsed."""


def _first_url(items: Any) -> Optional[str]:
    if not items:
        return None
    if isinstance(items, dict):
        items = [items]
    for item in items:
        url = item.get("url") or item.get("href")
        if url:
            return url
    return None


def extract_image_from_entry(entry: Any) -> Optional[str]:
    """Find a thumbnail in the entry's media fields or an image enclosure.

    feedparser exposes ``media:thumbnail`` as ``media_thumbnail`` and folds
    both ``media:content`` and ``media:group > media:content`` into
    ``media_content``.
    """
    thumbnail = _first_url(entry.get("media_thumbnail"))
    if thumbnail:
        return thumbnail

    for content in entry.get("media_content") or []:
        url = content.get("url")
        medium = content.get("medium") or ""
        content_type = content.get("type") or ""
        if url and (medium in ("", "image") or content_type.startswith("image")):
            return url

    for enclosure in entry.get("enclosures") or []:
        if (enclosure.get("type") or "").startswith("image"):
            url = enclosure.get("href") or enclosure.get("url")
            if url:
                return url
    return None


def parse_feed(content: bytes) -> List[Any]:
    """Parse a feed body into a list of feedparser entries."""
    feed = feedparser.parse(content)
    if getattr(feed, "bozo", False) and not feed.entries:
        raise FeedUnavailableError(f"Unparsable feed: {getattr(feed, 'bozo_exception', 'unknown error')}")
    return list(feed.entries)


class RSSFetcher:
    def __init__(
        self,
        cache: Optional[TTLCache] = None,
        image_resolver: Optional[ImageResolver] = None,
    ):
        self.cache: TTLCache = cache if cache is not None else TTLCache(settings.FEED_CACHE_SECONDS)
        self.image_resolver: ImageResolver = image_resolver or fetch_og_image
        self.session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                headers={"User-Agent": USER_AGENT},
                timeout=aiohttp.ClientTimeout(total=FEED_TIMEOUT_SECONDS),
            )
        return self.session

    async def close(self):
        if self.session and not self.session.closed:
            await self.session.close()

    async def _download(self, feed: FeedDescriptor) -> bytes:
        cached = self.cache.get(feed.url)
        if cached is not None:
            return cached

        session = await self._get_session()
        try:
            async with session.get(feed.url) as resp:
                if resp.status != 200:
                    raise FeedUnavailableError(f"HTTP {resp.status}")
                body = await resp.read()
        except aiohttp.ClientError as e:
            raise FeedUnavailableError(str(e)) from e
        except asyncio.TimeoutError as e:
            raise FeedUnavailableError("timed out") from e

        self.cache.set(feed.url, body)
        return body

    def entry_to_article(self, entry: Any, feed: FeedDescriptor) -> Article:
        title = entry.get("title") or "No title"
        description = entry.get("description") or entry.get("summary") or "No description available"
        link = entry.get("link") or "#"
        pub_date = entry.get("published") or entry.get("updated") or datetime.now(timezone.utc).isoformat()

        return Article(
            id=generate_news_id(link, "rss"),
            title=title,
            description=description,
            link=link,
            pub_date=pub_date,
            source=feed.source,
            image_url=extract_image_from_entry(entry),
            category=categorize(entry.get("title") or "", entry.get("description") or "", entry.get("tags")),
            region=feed.region,
        )

    async def _resolve_missing_images(self, articles: List[Article]) -> None:
        pending = [a for a in articles if not a.image_url and a.link.startswith("http")]
        if not pending:
            return
        results = await asyncio.gather(
            *(self.image_resolver(a.link) for a in pending),
            return_exceptions=True,
        )
        for article, result in zip(pending, results):
            if isinstance(result, str) and result:
                article.image_url = result

    async def fetch(self, feed: FeedDescriptor) -> List[Article]:
        """Fetch one feed; returns [] when the feed is unavailable."""
        try:
            logger.info(f"Fetching {feed.source} from {feed.url}")
            entries = parse_feed(await self._download(feed))
        except Exception as e:
            logger.warning(f"Skipping {feed.source} due to error: {e}")
            return []

        articles = [self.entry_to_article(entry, feed) for entry in entries[:MAX_ITEMS_PER_FEED]]
        await self._resolve_missing_images(articles)
        logger.info(f"Fetched {len(articles)} articles from {feed.source}")
        return articles

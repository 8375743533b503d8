"""
Article body crawler.

Fetches a news page from an allow-listed domain and extracts the readable
article text with BeautifulSoup.  Used by the summarizer and exposed as
``POST /api/crawl``.
"""
import asyncio
import logging
from typing import Awaitable, Callable, List, Optional
from urllib.parse import urlparse

import aiohttp
from bs4 import BeautifulSoup

from ..core.config import settings

logger = logging.getLogger(__name__)

MAX_RETRIES = 2
CRAWL_TIMEOUT_SECONDS = 15
RETRY_DELAY_BAD_STATUS = 1.0
RETRY_DELAY_ERROR = 2.0
MIN_CONTENT_LENGTH = 100

USER_AGENTS = [
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
]

NAVER_SELECTORS = ["#dic_area", "#articleBodyContents", ".article_body", ".article_viewer", "#articeBody"]
GENERIC_SELECTORS = [
    "article[class*='article' i]",
    "div[class*='article' i], div[class*='content' i], div[class*='body' i], div[class*='post' i]",
    "article",
    "div[id*='article' i], div[id*='content' i], div[id*='main' i]",
]
NOISE_TAGS = ["script", "style", "aside", "nav", "footer", "iframe", "form", "button"]
NOISE_SELECTOR = (
    "div[class*='ad' i], div[class*='banner' i], div[class*='related' i], div[class*='recommend' i]"
)


class CrawlError(Exception):
    """Raised when no article content could be extracted."""


class DomainNotAllowedError(CrawlError):
    """Raised for URLs outside the crawl allow-list."""


def is_domain_allowed(url: str, allowed_domains: List[str]) -> bool:
    host = (urlparse(url).hostname or "").lower()
    if not host:
        return False
    for domain in allowed_domains:
        domain = domain.lower()
        if host == domain or host.endswith("." + domain):
            return True
    return False


def _clean_lines(text: str, min_length: int) -> str:
    lines = (line.strip() for line in text.split("\n"))
    return "\n".join(line for line in lines if len(line) > min_length)


def extract_article_text(html: str, url: str) -> Optional[str]:
    """Return the article text when at least ``MIN_CONTENT_LENGTH`` chars were found."""
    soup = BeautifulSoup(html, "html.parser")
    selectors = NAVER_SELECTORS if "news.naver.com" in url else GENERIC_SELECTORS

    article = None
    for selector in selectors:
        article = soup.select_one(selector)
        if article is not None:
            break
    if article is None:
        return None

    for tag in article.find_all(NOISE_TAGS):
        tag.decompose()
    for tag in article.select(NOISE_SELECTOR):
        tag.decompose()

    text = _clean_lines(article.get_text(), 10)
    return text if len(text) >= MIN_CONTENT_LENGTH else None


def extract_body_text(html: str) -> Optional[str]:
    soup = BeautifulSoup(html, "html.parser")
    if soup.body is None:
        return None
    text = _clean_lines(soup.body.get_text(), 20)
    return text if len(text) >= MIN_CONTENT_LENGTH else None


class ArticleCrawler:
    def __init__(
        self,
        allowed_domains: Optional[List[str]] = None,
        max_retries: int = MAX_RETRIES,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.allowed_domains = allowed_domains if allowed_domains is not None else settings.CRAWL_ALLOWED_DOMAINS
        self.max_retries = max_retries
        self._sleep = sleep

    async def _fetch(self, session: aiohttp.ClientSession, url: str, attempt: int):
        headers = {
            "User-Agent": USER_AGENTS[attempt % len(USER_AGENTS)],
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
            "Accept-Language": "ko-KR,ko;q=0.9,en-US;q=0.8,en;q=0.7",
        }
        async with session.get(url, headers=headers, allow_redirects=True) as resp:
            if resp.status != 200:
                return resp.status, None
            return resp.status, await resp.text(errors="replace")

    async def crawl(self, url: str) -> str:
        if not is_domain_allowed(url, self.allowed_domains):
            raise DomainNotAllowedError(f"Domain not allowed: {urlparse(url).hostname or url}")

        logger.info(f"Crawling article from: {url}")
        timeout = aiohttp.ClientTimeout(total=CRAWL_TIMEOUT_SECONDS)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            for attempt in range(self.max_retries + 1):
                final_attempt = attempt == self.max_retries
                try:
                    status, html = await self._fetch(session, url, attempt)
                except Exception as e:
                    logger.warning(f"Crawl attempt {attempt + 1} failed: {e}")
                    if not final_attempt:
                        await self._sleep(RETRY_DELAY_ERROR)
                    continue

                if html is None:
                    logger.warning(f"HTTP error {status} (attempt {attempt + 1}/{self.max_retries + 1})")
                    if not final_attempt:
                        await self._sleep(RETRY_DELAY_BAD_STATUS)
                    continue

                content = extract_article_text(html, url)
                if content is None and final_attempt:
                    content = extract_body_text(html)
                    if content:
                        logger.info(f"Extracted from entire body: {len(content)} characters")
                if content:
                    logger.info(f"Crawling success: {len(content)} characters")
                    return content

                if not final_attempt:
                    logger.info(f"Content too short, retrying (attempt {attempt + 1}/{self.max_retries + 1})")
                    await self._sleep(RETRY_DELAY_BAD_STATUS)

        raise CrawlError("Failed to extract article content")


# Global instance
article_crawler = ArticleCrawler()

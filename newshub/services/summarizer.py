"""
Summarization workflow: summary cache, crawl, LLM call, persistence and
per-user analytics.
"""
import logging
from typing import Any, Dict, List, Optional

from ..core.database import ANONYMOUS_USER, NewsDatabase, db
from ..models.schemas import Category
from ..utils.dates import to_iso
from .categorizer import categorize
from .crawler import ArticleCrawler, article_crawler
from .llm_service import LLMError, LLMService, llm_service

logger = logging.getLogger(__name__)

BOOKMARK_SUMMARY_UNAVAILABLE = "요약을 불러올 수 없습니다. 링크를 통해 기사를 확인해주세요."


def validated_category(value: Optional[str]) -> Optional[str]:
    """Keep only concrete enum categories; "all" and unknown labels become None."""
    category = Category.parse(value)
    if category is None or category == Category.ALL:
        if value:
            logger.info(f"Discarding out-of-enum category '{value}'")
        return None
    return category.value


class SummaryService:
    def __init__(
        self,
        database: Optional[NewsDatabase] = None,
        crawler: Optional[ArticleCrawler] = None,
        llm: Optional[LLMService] = None,
    ):
        self.database = database or db
        self.crawler = crawler or article_crawler
        self.llm = llm or llm_service

    async def _cached(self, news_id: str) -> Optional[Dict[str, Any]]:
        try:
            existing = await self.database.get_summary(news_id)
        except Exception as e:
            logger.warning(f"Summary cache lookup failed (continuing with new summary): {e}")
            return None
        if existing and (existing.get("summary") or "").strip():
            return existing
        return None

    async def _article_content(self, link: str, title: str, description: Optional[str]) -> str:
        try:
            content = await self.crawler.crawl(link)
            logger.info(f"Crawled {len(content)} characters")
            return content
        except Exception as e:
            logger.info(f"Crawling failed, using title and description: {e}")
            return f"{title}\n\n{description or ''}"

    async def _record_request(self, user_id: Optional[str], news_id: str) -> None:
        try:
            await self.database.increment_summary_request(user_id or ANONYMOUS_USER, news_id)
        except Exception as e:
            logger.warning(f"Failed to record summary analytics for {news_id}: {e}")

    async def summarize(
        self,
        news_id: str,
        link: str,
        title: str = "",
        description: Optional[str] = "",
        user_id: Optional[str] = None,
        api_key: Optional[str] = None,
        source: Optional[str] = None,
        pub_date: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Return a summary for ``news_id``, reusing the stored one when present.

        Raises ``LLMError`` when the LLM call fails or no API key is available.
        """
        cached = await self._cached(news_id)
        if cached is not None:
            logger.info(f"Found existing summary in DB for newsId: {news_id}")
            try:
                view_count = await self.database.increment_view_count(news_id)
            except Exception as e:
                logger.warning(f"Failed to increment view count for {news_id}: {e}")
                view_count = None
            await self._record_request(user_id, news_id)
            return {
                "summary": cached["summary"],
                "keyPoints": cached.get("key_points") or [],
                "category": validated_category(cached.get("category")),
                "fromCache": True,
                "viewCount": view_count if view_count is not None else (cached.get("view_count") or 0) + 1,
            }

        if not (api_key or self.llm.available):
            raise LLMError(400, "API key is required")

        content = await self._article_content(link, title, description)
        result = await self.llm.summarize_article(content, api_key=api_key)
        category = validated_category(result.get("category"))
        key_points: List[str] = result.get("key_points") or []

        view_count = 1
        try:
            row = await self.database.upsert_summary(
                news_id,
                summary=result["summary"],
                key_points=key_points,
                category=category,
                link=link,
                title=title,
                description=description,
                source=source,
                pub_date=to_iso(pub_date),
            )
            view_count = row.get("view_count") or 1
            logger.info(f"Summary saved to DB for newsId: {news_id}")
        except Exception as e:
            logger.error(f"Failed to save summary to DB: {e}")

        await self._record_request(user_id, news_id)

        return {
            "summary": result["summary"],
            "keyPoints": key_points,
            "category": category,
            "fromCache": False,
            "viewCount": view_count,
        }

    async def summarize_bookmark(self, bookmark: Dict[str, Any]) -> Dict[str, Any]:
        """Summary for an email digest entry; never raises."""
        news_id = str(bookmark.get("article_id") or bookmark.get("id"))
        summary = (bookmark.get("description") or "").strip()
        key_points: List[str] = []
        category = validated_category(bookmark.get("category"))
        if category is None:
            heuristic = categorize(bookmark.get("title") or "", bookmark.get("description") or "")
            category = heuristic.value if heuristic else None

        try:
            result = await self.summarize(
                news_id,
                link=bookmark.get("link") or "",
                title=bookmark.get("title") or "",
                description=bookmark.get("description"),
                source=bookmark.get("source"),
                pub_date=bookmark.get("pub_date"),
            )
            summary = result["summary"] or summary
            key_points = result["keyPoints"]
            category = result["category"] or category
        except Exception as e:
            logger.error(f"Failed to summarize bookmark {bookmark.get('id')}: {e}")
            summary = summary or BOOKMARK_SUMMARY_UNAVAILABLE

        return {
            "id": bookmark.get("id"),
            "title": bookmark.get("title"),
            "link": bookmark.get("link"),
            "source": bookmark.get("source"),
            "category": category,
            "summary": summary,
            "keyPoints": key_points,
            "createdAt": bookmark.get("created_at"),
            "publishedAt": bookmark.get("pub_date"),
        }


# Global instance
summary_service = SummaryService()

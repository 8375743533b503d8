from fastapi import APIRouter, HTTPException
from typing import Optional
import logging

from ..models.schemas import CrawlRequest, NewsViewRequest, SpellcheckRequest, SummarizeRequest
from ..services.categorizer import filter_by_category
from ..services.crawler import CrawlError, DomainNotAllowedError, article_crawler
from ..services.llm_service import LLMError, llm_service
from ..services.news_aggregator import articles_to_json, filter_by_region, news_aggregator
from ..services.summarizer import summary_service
from ..core.database import db

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/news")
async def get_news(category: Optional[str] = None, region: Optional[str] = None):
    """Aggregated news from every RSS feed and the Naver search API"""
    try:
        articles = await news_aggregator.get_news()
        articles = filter_by_region(filter_by_category(articles, category), region)
        return {"articles": articles_to_json(articles), "totalCount": len(articles)}
    except Exception as e:
        logger.error(f"Error fetching news: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch news")


@router.get("/search")
async def search_news(q: Optional[str] = None, region: str = "all"):
    if not q or not q.strip():
        return {"articles": [], "message": "검색어를 입력해주세요"}

    try:
        articles, query = await news_aggregator.search(q.strip(), region)
        return {"articles": articles_to_json(articles), "query": query.to_json()}
    except Exception as e:
        logger.error(f"Search API error: {e}")
        raise HTTPException(status_code=500, detail="검색 중 오류가 발생했습니다")


@router.post("/summarize")
async def summarize(request: SummarizeRequest):
    """Summarize an article, reusing the stored summary when one exists"""
    if not request.link:
        raise HTTPException(status_code=400, detail="Link is required")
    if not request.news_id:
        raise HTTPException(status_code=400, detail="News ID is required")

    try:
        return await summary_service.summarize(
            request.news_id,
            request.link,
            title=request.title,
            description=request.description,
            user_id=request.user_id,
            api_key=request.api_key,
            source=request.source,
            pub_date=request.pub_date,
        )
    except LLMError as e:
        logger.error(f"LLM error while summarizing {request.news_id}: {e.message}")
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Summarization error: {e}")
        raise HTTPException(status_code=500, detail="Failed to generate summary. Please try again.")


@router.get("/summary/{news_id}")
async def get_summary(news_id: str):
    try:
        row = await db.get_summary(news_id)
    except Exception as e:
        logger.error(f"Summary lookup failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch summary")

    if not row or not row.get("summary"):
        return {"summary": None}
    return {
        "summary": row["summary"],
        "keyPoints": row.get("key_points") or [],
        "category": row.get("category"),
        "viewCount": row.get("view_count"),
    }


@router.post("/crawl")
async def crawl(request: CrawlRequest):
    if not request.url:
        raise HTTPException(status_code=400, detail="URL is required")

    try:
        content = await article_crawler.crawl(request.url)
    except DomainNotAllowedError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except CrawlError as e:
        logger.warning(f"Crawling failed for {request.url}: {e}")
        raise HTTPException(status_code=500, detail="Failed to extract article content")
    except Exception as e:
        logger.error(f"Crawl API error: {e}")
        raise HTTPException(status_code=500, detail="Failed to crawl article")

    return {"success": True, "content": content, "wordCount": len(content), "url": request.url}


@router.post("/news/view")
async def record_news_view(request: NewsViewRequest):
    if not request.news_id:
        raise HTTPException(status_code=400, detail="News ID is required")

    try:
        view_count = await db.record_view(request.news_id, request.title or "", request.link or "")
    except Exception as e:
        logger.error(f"Failed to update view count: {e}")
        raise HTTPException(status_code=500, detail="Failed to update view count")
    return {"success": True, "viewCount": view_count}


@router.post("/spellcheck")
async def spellcheck(request: SpellcheckRequest):
    if not request.keyword or not request.keyword.strip():
        raise HTTPException(status_code=400, detail="Keyword is required")

    keyword = request.keyword.strip()
    result = await llm_service.correct_spelling(keyword)
    return {"original": keyword, "corrected": result["corrected"], "hasTypo": result["hasTypo"]}

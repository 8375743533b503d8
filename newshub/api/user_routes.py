from fastapi import APIRouter, Header, HTTPException
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
import logging
import re

from ..core.config import settings
from ..core.database import ANONYMOUS_USER, DuplicateEntryError, KeywordLimitError, db
from ..models.schemas import (
    BookmarkCreateRequest, EmailSettingsRequest, KeywordCreateRequest,
    LinkClickEvent, SearchKeywordEvent, SendBookmarksRequest, SendDigestRequest,
)
from ..services.digest_service import DigestError, digest_service, is_valid_email

logger = logging.getLogger(__name__)
router = APIRouter()

TIME_RANGES = {
    "1h": timedelta(hours=1),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}
DEFAULT_DELIVERY_DAYS = [1, 2, 3, 4, 5]
DEFAULT_DELIVERY_HOUR = 6
ALLOWED_DELIVERY_HOURS = (6, 18)


def _require_user(user_id: Optional[str]) -> str:
    if not user_id:
        raise HTTPException(status_code=400, detail="User ID is required")
    return user_id


def normalize_keyword_for_grouping(keyword: str) -> str:
    return re.sub(r"\s+", "", keyword).upper()


# ------------------------------------------------------------
# Bookmarks

@router.get("/bookmarks")
async def list_bookmarks(userId: Optional[str] = None):
    user_id = _require_user(userId)
    try:
        return {"bookmarks": await db.list_bookmarks(user_id)}
    except Exception as e:
        logger.error(f"Failed to fetch bookmarks: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch bookmarks")


@router.post("/bookmarks")
async def add_bookmark(request: BookmarkCreateRequest):
    user_id = _require_user(request.user_id)
    if not request.article_id or not request.title or not request.link:
        raise HTTPException(status_code=400, detail="Article ID, title, and link are required")

    try:
        bookmark = await db.add_bookmark({
            "user_id": user_id,
            "article_id": request.article_id,
            "title": request.title,
            "description": request.description,
            "link": request.link,
            "source": request.source,
            "image_url": request.image_url,
            "category": request.category,
            "region": request.region,
            "pub_date": request.pub_date,
        })
    except DuplicateEntryError:
        raise HTTPException(status_code=409, detail="Already bookmarked")
    except Exception as e:
        logger.error(f"Bookmark insert error: {e}")
        raise HTTPException(status_code=500, detail="Failed to add bookmark")
    return {"bookmark": bookmark}


@router.delete("/bookmarks")
async def delete_bookmark(userId: Optional[str] = None, articleId: Optional[str] = None,
                          deleteAll: Optional[str] = None):
    user_id = _require_user(userId)
    try:
        if deleteAll == "true":
            await db.delete_all_bookmarks(user_id)
            return {"success": True}
        if not articleId:
            raise HTTPException(status_code=400, detail="Article ID is required")
        await db.delete_bookmark(user_id, articleId)
        return {"success": True}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to delete bookmark: {e}")
        raise HTTPException(status_code=500, detail="Failed to delete bookmark")


# ------------------------------------------------------------
# Keyword subscriptions

@router.get("/subscriptions/keywords")
async def list_keywords(userId: Optional[str] = None):
    user_id = _require_user(userId)
    try:
        return {"keywords": await db.list_keywords(user_id)}
    except Exception as e:
        logger.error(f"Failed to fetch keywords: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch keywords")


@router.post("/subscriptions/keywords")
async def add_keyword(request: KeywordCreateRequest):
    if not request.user_id or request.keyword is None:
        raise HTTPException(status_code=400, detail="User ID and keyword are required")
    keyword = request.keyword.strip()
    if not keyword:
        raise HTTPException(status_code=400, detail="Keyword cannot be empty")

    try:
        row = await db.add_keyword(request.user_id, keyword)
    except DuplicateEntryError:
        raise HTTPException(status_code=409, detail="Keyword already subscribed")
    except KeywordLimitError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to add keyword: {e}")
        raise HTTPException(status_code=500, detail="Failed to add keyword")
    return {"keyword": row}


@router.delete("/subscriptions/keywords")
async def delete_keyword(userId: Optional[str] = None, keywordId: Optional[str] = None):
    if not userId or not keywordId:
        raise HTTPException(status_code=400, detail="User ID and keyword ID are required")
    try:
        await db.delete_keyword(userId, keywordId)
    except Exception as e:
        logger.error(f"Failed to delete keyword: {e}")
        raise HTTPException(status_code=500, detail="Failed to delete keyword")
    return {"success": True}


# ------------------------------------------------------------
# Email subscription settings

@router.get("/subscriptions/email-settings")
async def get_email_settings(userId: Optional[str] = None):
    user_id = _require_user(userId)
    try:
        return {"settings": await db.get_email_settings(user_id)}
    except Exception as e:
        logger.error(f"Failed to fetch email settings: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch settings")


def validate_delivery_days(days: Any) -> List[int]:
    if days is None:
        return list(DEFAULT_DELIVERY_DAYS)
    if not isinstance(days, list):
        raise HTTPException(status_code=400, detail="Delivery days must be an array")
    if any(isinstance(d, bool) or not isinstance(d, int) or d < 0 or d > 6 for d in days):
        raise HTTPException(status_code=400, detail="Invalid delivery day (must be 0-6)")
    return sorted(set(days))


@router.post("/subscriptions/email-settings")
async def save_email_settings(request: EmailSettingsRequest):
    if not request.user_id or not request.email:
        raise HTTPException(status_code=400, detail="User ID and email are required")
    if not is_valid_email(request.email):
        raise HTTPException(status_code=400, detail="Invalid email format")

    delivery_days = validate_delivery_days(request.delivery_days)
    delivery_hour = DEFAULT_DELIVERY_HOUR if request.delivery_hour is None else request.delivery_hour
    if delivery_hour not in ALLOWED_DELIVERY_HOURS:
        raise HTTPException(status_code=400, detail="Invalid delivery hour (must be 6 or 18)")

    try:
        saved = await db.upsert_email_settings(
            request.user_id,
            request.email.strip(),
            bool(request.enabled),
            delivery_days,
            delivery_hour,
        )
    except Exception as e:
        logger.error(f"Email settings upsert error: {e}")
        raise HTTPException(status_code=500, detail="Failed to save settings")
    return {"settings": saved}


@router.delete("/subscriptions/email-settings")
async def delete_email_settings(userId: Optional[str] = None):
    user_id = _require_user(userId)
    try:
        await db.delete_email_settings(user_id)
    except Exception as e:
        logger.error(f"Failed to delete email settings: {e}")
        raise HTTPException(status_code=500, detail="Failed to delete settings")
    return {"success": True}


# ------------------------------------------------------------
# Analytics

@router.post("/analytics/search-keyword")
async def track_search_keyword(event: SearchKeywordEvent):
    if not event.keyword or not event.keyword.strip():
        raise HTTPException(status_code=400, detail="Keyword is required")
    try:
        await db.record_search_keyword(event.user_id or ANONYMOUS_USER, event.keyword.strip().lower())
    except Exception as e:
        logger.error(f"Failed to track search keyword: {e}")
        raise HTTPException(status_code=500, detail="Failed to track search keyword")
    return {"success": True}


@router.post("/analytics/link-click")
async def track_link_click(event: LinkClickEvent):
    if not event.news_id:
        raise HTTPException(status_code=400, detail="News ID is required")
    try:
        await db.increment_link_click(event.user_id or ANONYMOUS_USER, event.news_id)
    except Exception as e:
        logger.error(f"Failed to track link click: {e}")
        raise HTTPException(status_code=500, detail="Failed to track link click")
    return {"success": True}


@router.get("/trending")
async def trending_keywords(limit: int = 10, timeRange: str = "24h"):
    now = datetime.now(timezone.utc)
    since = now - TIME_RANGES.get(timeRange, TIME_RANGES["24h"])
    try:
        rows = await db.get_trending_keywords(since.isoformat(), limit)
    except Exception as e:
        logger.error(f"Failed to fetch trending keywords: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch trending keywords")

    total = sum(r["search_count"] for r in rows)
    keywords = [
        {
            "keyword": r["keyword"],
            "searchCount": r["search_count"],
            "rank": index,
            "percentage": round(r["search_count"] / total * 100) if total else 0,
        }
        for index, r in enumerate(rows, start=1)
    ]
    return {
        "keywords": keywords,
        "totalSearches": total,
        "timeRange": timeRange,
        "generatedAt": now.isoformat(),
    }


@router.get("/recommendations/keywords")
async def recommend_keywords(userId: Optional[str] = None, limit: int = 5):
    user_id = _require_user(userId)
    try:
        subscribed = {normalize_keyword_for_grouping(k["keyword"]) for k in await db.list_keywords(user_id)}
        everything = await db.list_all_keywords()
    except Exception as e:
        logger.error(f"Failed to build keyword recommendations: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch subscriptions")

    grouped: Dict[str, Dict[str, Any]] = {}
    for keyword in everything:
        key = normalize_keyword_for_grouping(keyword)
        entry = grouped.setdefault(key, {"keyword": keyword, "subscriberCount": 0})
        entry["subscriberCount"] += 1

    candidates = [v for k, v in grouped.items() if k not in subscribed]
    candidates.sort(key=lambda v: v["subscriberCount"], reverse=True)
    recommendations = [dict(item, rank=index) for index, item in enumerate(candidates[:limit], start=1)]
    return {
        "recommendations": recommendations,
        "totalKeywords": len(grouped),
        "generatedAt": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/mypage")
async def mypage(userId: Optional[str] = None):
    if not userId or userId == ANONYMOUS_USER:
        raise HTTPException(status_code=400, detail="User ID is required")
    try:
        stats = await db.get_user_stats(userId)
        bookmarks = await db.list_bookmarks(userId, limit=10)
    except Exception as e:
        logger.error(f"Failed to load mypage data: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

    return {
        "stats": {
            "totalSummaryRequests": stats["totalSummaryRequests"],
            "totalLinkClicks": stats["totalLinkClicks"],
            "totalSearches": stats["totalSearches"],
            "totalBookmarks": stats["totalBookmarks"],
        },
        "recentSearches": stats["recentSearches"],
        "recentBookmarks": bookmarks,
    }


@router.get("/codes")
async def list_codes(codeType: Optional[str] = None):
    if not codeType:
        raise HTTPException(status_code=400, detail="Code type is required")
    try:
        return {"codes": await db.list_codes(codeType)}
    except Exception as e:
        logger.error(f"Failed to fetch codes: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch codes")


# ------------------------------------------------------------
# Email delivery

@router.post("/email/send-digest")
async def send_digest(request: SendDigestRequest):
    try:
        return await digest_service.send_digest(request.user_id)
    except DigestError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Email digest error: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/email/send-bookmarks")
async def send_bookmarks(request: SendBookmarksRequest):
    try:
        return await digest_service.send_bookmarks(request.user_id, request.email, request.bookmark_ids)
    except DigestError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Send bookmarks email error: {e}")
        raise HTTPException(status_code=500, detail="메일 발송 중 문제가 발생했습니다.")


@router.get("/cron/send-daily-digest")
async def send_daily_digest(authorization: Optional[str] = Header(None)):
    if settings.CRON_SECRET and authorization != f"Bearer {settings.CRON_SECRET}":
        raise HTTPException(status_code=401, detail="Unauthorized")
    try:
        return await digest_service.run_daily_digest()
    except Exception as e:
        logger.error(f"Daily digest job error: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

"""
Email digest workflows: keyword digest for one user, the daily cron run over
every subscriber, and the on-demand bookmark summary email.
"""
import asyncio
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..core.database import NewsDatabase, db
from ..utils.dates import parse_pub_date
from .mailer import KST, Mailer, MailerError, format_korean_datetime, mailer, render_bookmarks_html, render_digest_html
from .summarizer import SummaryService, summary_service

logger = logging.getLogger(__name__)

MAX_DIGEST_NEWS = 10
MAX_BOOKMARK_SELECTION = 10
DIGEST_WINDOW = timedelta(hours=24)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class DigestError(Exception):
    """Digest failure carrying the HTTP status to report to the client."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def is_valid_email(email: Optional[str]) -> bool:
    return bool(email) and EMAIL_RE.match(email.strip()) is not None


def kst_weekday(now: datetime) -> int:
    """Day of week in KST with 0 = Sunday, the convention stored in delivery_days."""
    return (now.astimezone(KST).weekday() + 1) % 7


def _newest_first(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    epoch = datetime.min.replace(tzinfo=timezone.utc)
    return sorted(items, key=lambda n: parse_pub_date(n.get("pub_date")) or epoch, reverse=True)


class DigestService:
    def __init__(
        self,
        database: Optional[NewsDatabase] = None,
        mail: Optional[Mailer] = None,
        summaries: Optional[SummaryService] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.database = database or db
        self.mailer = mail or mailer
        self.summaries = summaries or summary_service
        self._clock = clock

    async def collect_news(self, keywords: Sequence[str], now: datetime) -> List[Dict[str, Any]]:
        since = (now - DIGEST_WINDOW).isoformat()
        by_link: Dict[str, Dict[str, Any]] = {}
        for keyword in keywords:
            for item in await self.database.search_recent_summaries(keyword, since, MAX_DIGEST_NEWS):
                by_link.setdefault(item.get("link") or item["news_id"], item)
        return _newest_first(list(by_link.values()))[:MAX_DIGEST_NEWS]

    async def send_digest(self, user_id: str) -> Dict[str, Any]:
        if not user_id:
            raise DigestError(400, "User ID is required")

        settings = await self.database.get_email_settings(user_id)
        if not settings:
            raise DigestError(404, "Email settings not found")
        if not settings["enabled"]:
            raise DigestError(400, "Email subscription is disabled")

        now = self._clock()
        current_day = kst_weekday(now)
        if current_day not in (settings.get("delivery_days") or []):
            return {
                "message": "Today is not a delivery day",
                "currentDay": current_day,
                "deliveryDays": settings.get("delivery_days") or [],
            }

        keywords = [k["keyword"] for k in await self.database.list_keywords(user_id)]
        if not keywords:
            raise DigestError(404, "No subscribed keywords found")

        news = await self.collect_news(keywords, now)
        email = settings["email"]

        if not news:
            await self.database.log_delivery(user_id, email, "success", 0, "No matching news found")
            return {"message": "No matching news found in the last 24 hours", "newsCount": 0}

        subject = f"📰 오늘의 뉴스 다이제스트 - {', '.join(keywords)}"
        try:
            await self.mailer.send(email, subject, render_digest_html(news, keywords))
        except MailerError as e:
            logger.error(f"Digest delivery failed for {user_id}: {e}")
            await self.database.log_delivery(user_id, email, "failed", len(news), str(e))
            raise DigestError(500, "Failed to send email") from e

        await self.database.log_delivery(user_id, email, "success", len(news))
        await self.database.mark_digest_sent(user_id)
        return {"success": True, "newsCount": len(news)}

    async def run_daily_digest(self) -> Dict[str, Any]:
        now = self._clock()
        current_day = kst_weekday(now)
        logger.info(f"Starting daily digest job, KST day {current_day}")

        subscribers = await self.database.list_enabled_subscribers()
        todays = [s for s in subscribers if current_day in (s.get("delivery_days") or [])]
        logger.info(f"{len(todays)} of {len(subscribers)} active subscribers scheduled today")

        results = []
        for subscriber in todays:
            try:
                result = await self.send_digest(subscriber["user_id"])
                results.append({"email": subscriber["email"], "success": True, "newsCount": result.get("newsCount", 0)})
            except DigestError as e:
                logger.error(f"Failed to send digest to {subscriber['email']}: {e.message}")
                results.append({"email": subscriber["email"], "success": False, "error": e.message})
            except Exception as e:
                logger.error(f"Error sending digest to {subscriber['email']}: {e}")
                results.append({"email": subscriber["email"], "success": False, "error": str(e)})

        success_count = sum(1 for r in results if r["success"])
        logger.info(f"Daily digest completed. Success: {success_count}, Failed: {len(results) - success_count}")
        return {
            "message": "Daily digest job completed",
            "currentDay": current_day,
            "processedCount": len(todays),
            "successCount": success_count,
            "failedCount": len(results) - success_count,
            "results": results,
        }

    async def send_bookmarks(self, user_id: Optional[str], email: Optional[str],
                             bookmark_ids: Optional[Sequence[Any]]) -> Dict[str, Any]:
        if not user_id:
            raise DigestError(400, "User ID is required")
        if not isinstance(email, str) or not is_valid_email(email):
            raise DigestError(400, "유효한 이메일 주소가 필요합니다.")
        if not bookmark_ids:
            raise DigestError(400, "메일로 보낼 북마크가 없습니다.")

        unique_ids = list(dict.fromkeys(str(i) for i in bookmark_ids))
        if len(unique_ids) > MAX_BOOKMARK_SELECTION:
            raise DigestError(400, f"최대 {MAX_BOOKMARK_SELECTION}개의 북마크만 선택할 수 있습니다.")

        bookmarks = await self.database.get_bookmarks_by_ids(user_id, unique_ids)
        if not bookmarks:
            raise DigestError(404, "선택한 북마크를 찾을 수 없습니다.")

        order = {bookmark_id: index for index, bookmark_id in enumerate(unique_ids)}
        bookmarks.sort(key=lambda b: order.get(str(b["id"]), 0))

        summarized = await asyncio.gather(*(self.summaries.summarize_bookmark(b) for b in bookmarks))
        now = self._clock()
        subject = f"📌 북마크 뉴스 요약 ({len(summarized)}건) - {format_korean_datetime(now)}"

        try:
            await self.mailer.send(email, subject, render_bookmarks_html(summarized, now))
        except MailerError as e:
            await self.database.log_delivery(user_id, email, "failed", len(summarized), str(e))
            raise DigestError(500, "메일 발송 중 문제가 발생했습니다.") from e

        await self.database.log_delivery(user_id, email, "success", len(summarized))
        return {"success": True, "sentCount": len(summarized)}


# Global instance
digest_service = DigestService()

import sqlite3
import json
from datetime import datetime, timezone
from typing import List, Dict, Optional, Any, Iterable
import logging

from .config import settings

logger = logging.getLogger(__name__)

MAX_KEYWORDS_PER_USER = 3
ANONYMOUS_USER = "Anonymous"

DEFAULT_CATEGORY_CODES = [
    ("all", "전체", "All"),
    ("world", "국제", "World"),
    ("politics", "정치", "Politics"),
    ("technology", "기술", "Technology"),
    ("business", "경제", "Business"),
    ("science", "과학", "Science"),
    ("health", "건강", "Health"),
    ("sports", "스포츠", "Sports"),
    ("entertainment", "연예", "Entertainment"),
]


class DuplicateEntryError(Exception):
    """Raised when an insert violates a uniqueness constraint."""


class KeywordLimitError(Exception):
    """Raised when a user already subscribes to the maximum number of keywords."""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row(row: Optional[sqlite3.Row], json_fields: Iterable[str] = ()) -> Optional[Dict[str, Any]]:
    if row is None:
        return None
    data = dict(row)
    for name in json_fields:
        if data.get(name) is not None:
            data[name] = json.loads(data[name])
    return data


class NewsDatabase:
    def __init__(self, db_path: str = "newshub.db"):
        self.db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    async def init_db(self):
        conn = self._connect()
        cursor = conn.cursor()

        cursor.executescript('''
            CREATE TABLE IF NOT EXISTS news_summaries (
                news_id TEXT PRIMARY KEY,
                news_url TEXT,
                news_title TEXT,
                title TEXT,
                link TEXT,
                description TEXT,
                source TEXT,
                pub_date TEXT,
                summary TEXT,
                key_points TEXT,
                category TEXT,
                view_count INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS news_summary_analytics (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                news_id TEXT NOT NULL,
                summary_request_count INTEGER NOT NULL DEFAULT 0,
                link_click_count INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                UNIQUE (user_id, news_id)
            );

            CREATE TABLE IF NOT EXISTS search_keyword_analytics (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                keyword TEXT NOT NULL,
                search_count INTEGER NOT NULL DEFAULT 0,
                last_searched_at TEXT NOT NULL,
                UNIQUE (user_id, keyword)
            );

            CREATE TABLE IF NOT EXISTS bookmarks (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                article_id TEXT NOT NULL,
                title TEXT NOT NULL,
                description TEXT,
                link TEXT NOT NULL,
                source TEXT,
                image_url TEXT,
                category TEXT,
                region TEXT,
                pub_date TEXT,
                created_at TEXT NOT NULL,
                UNIQUE (user_id, article_id)
            );

            CREATE TABLE IF NOT EXISTS subscribed_keywords (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                keyword TEXT NOT NULL,
                created_at TEXT NOT NULL,
                UNIQUE (user_id, keyword)
            );

            CREATE TABLE IF NOT EXISTS email_subscription_settings (
                user_id TEXT PRIMARY KEY,
                email TEXT NOT NULL,
                enabled INTEGER NOT NULL DEFAULT 0,
                delivery_days TEXT NOT NULL,
                delivery_hour INTEGER NOT NULL DEFAULT 6,
                last_sent_at TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS email_delivery_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                email TEXT NOT NULL,
                status TEXT NOT NULL,
                news_count INTEGER NOT NULL DEFAULT 0,
                error_message TEXT,
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS codes (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                code_type TEXT NOT NULL,
                code TEXT NOT NULL,
                label_ko TEXT,
                label_en TEXT,
                display_order INTEGER NOT NULL DEFAULT 0,
                is_active INTEGER NOT NULL DEFAULT 1,
                UNIQUE (code_type, code)
            );

            CREATE INDEX IF NOT EXISTS idx_bookmarks_user ON bookmarks(user_id, created_at);
            CREATE INDEX IF NOT EXISTS idx_keywords_user ON subscribed_keywords(user_id);
            CREATE INDEX IF NOT EXISTS idx_search_last ON search_keyword_analytics(last_searched_at);
        ''')

        cursor.executemany('''
            INSERT OR IGNORE INTO codes (code_type, code, label_ko, label_en, display_order)
            VALUES ('news_category', ?, ?, ?, ?)
        ''', [(code, ko, en, order) for order, (code, ko, en) in enumerate(DEFAULT_CATEGORY_CODES)])

        conn.commit()
        conn.close()
        logger.info("Database initialized successfully")

    # ------------------------------------------------------------
    # News summaries

    async def get_summary(self, news_id: str) -> Optional[Dict[str, Any]]:
        conn = self._connect()
        row = conn.execute("SELECT * FROM news_summaries WHERE news_id = ?", (news_id,)).fetchone()
        conn.close()
        return _row(row, json_fields=("key_points",))

    async def increment_view_count(self, news_id: str) -> Optional[int]:
        """Increment the view counter of an existing row; None when the row is missing."""
        conn = self._connect()
        cursor = conn.execute('''
            UPDATE news_summaries SET view_count = view_count + 1, updated_at = ?
            WHERE news_id = ?
        ''', (_now(), news_id))
        row = None
        if cursor.rowcount:
            row = conn.execute("SELECT view_count FROM news_summaries WHERE news_id = ?", (news_id,)).fetchone()
        conn.commit()
        conn.close()
        return row["view_count"] if row else None

    async def record_view(self, news_id: str, title: str = "", link: str = "") -> int:
        """Increment the view counter, creating the row with a count of 1 when absent."""
        now = _now()
        conn = self._connect()
        conn.execute('''
            INSERT INTO news_summaries (news_id, title, link, news_title, news_url, view_count, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, 1, ?, ?)
            ON CONFLICT(news_id) DO UPDATE SET
                view_count = news_summaries.view_count + 1,
                updated_at = excluded.updated_at
        ''', (news_id, title, link, title, link, now, now))
        row = conn.execute("SELECT view_count FROM news_summaries WHERE news_id = ?", (news_id,)).fetchone()
        conn.commit()
        conn.close()
        return row["view_count"]

    async def upsert_summary(self, news_id: str, summary: str, key_points: Optional[List[str]],
                             category: Optional[str] = None, link: str = "", title: str = "",
                             description: Optional[str] = None, source: Optional[str] = None,
                             pub_date: Optional[str] = None) -> Dict[str, Any]:
        now = _now()
        conn = self._connect()
        conn.execute('''
            INSERT INTO news_summaries (
                news_id, news_url, news_title, title, link, description, source, pub_date,
                summary, key_points, category, view_count, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 1, ?, ?)
            ON CONFLICT(news_id) DO UPDATE SET
                summary = excluded.summary,
                key_points = excluded.key_points,
                category = COALESCE(excluded.category, news_summaries.category),
                news_url = excluded.news_url,
                news_title = excluded.news_title,
                description = COALESCE(excluded.description, news_summaries.description),
                source = COALESCE(excluded.source, news_summaries.source),
                pub_date = COALESCE(excluded.pub_date, news_summaries.pub_date),
                view_count = news_summaries.view_count + 1,
                updated_at = excluded.updated_at
        ''', (
            news_id, link, title, title, link, description, source, pub_date,
            summary, json.dumps(key_points, ensure_ascii=False) if key_points else None,
            category, now, now,
        ))
        row = conn.execute("SELECT * FROM news_summaries WHERE news_id = ?", (news_id,)).fetchone()
        conn.commit()
        conn.close()
        return _row(row, json_fields=("key_points",))

    async def get_categories(self, news_ids: List[str]) -> Dict[str, str]:
        """Batch lookup of persisted categories; ids without one are omitted."""
        if not news_ids:
            return {}
        conn = self._connect()
        placeholders = ",".join("?" for _ in news_ids)
        rows = conn.execute(
            f"SELECT news_id, category FROM news_summaries "
            f"WHERE category IS NOT NULL AND news_id IN ({placeholders})",
            list(news_ids),
        ).fetchall()
        conn.close()
        return {row["news_id"]: row["category"] for row in rows}

    async def search_recent_summaries(self, keyword: str, since: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Stored news whose title or description mentions ``keyword``, newest first."""
        pattern = f"%{keyword}%"
        conn = self._connect()
        rows = conn.execute('''
            SELECT news_id, COALESCE(title, news_title) AS title, description,
                   COALESCE(link, news_url) AS link, source,
                   COALESCE(pub_date, created_at) AS pub_date
            FROM news_summaries
            WHERE (COALESCE(title, news_title) LIKE ? OR description LIKE ?)
              AND COALESCE(pub_date, created_at) >= ?
            ORDER BY COALESCE(pub_date, created_at) DESC
            LIMIT ?
        ''', (pattern, pattern, since, limit)).fetchall()
        conn.close()
        return [dict(r) for r in rows]

    # ------------------------------------------------------------
    # Analytics

    async def increment_summary_request(self, user_id: str, news_id: str) -> None:
        now = _now()
        conn = self._connect()
        conn.execute('''
            INSERT INTO news_summary_analytics (user_id, news_id, summary_request_count, link_click_count,
                                                created_at, updated_at)
            VALUES (?, ?, 1, 0, ?, ?)
            ON CONFLICT(user_id, news_id) DO UPDATE SET
                summary_request_count = news_summary_analytics.summary_request_count + 1,
                updated_at = excluded.updated_at
        ''', (user_id, news_id, now, now))
        conn.commit()
        conn.close()

    async def increment_link_click(self, user_id: str, news_id: str) -> None:
        now = _now()
        conn = self._connect()
        conn.execute('''
            INSERT INTO news_summary_analytics (user_id, news_id, summary_request_count, link_click_count,
                                                created_at, updated_at)
            VALUES (?, ?, 0, 1, ?, ?)
            ON CONFLICT(user_id, news_id) DO UPDATE SET
                link_click_count = news_summary_analytics.link_click_count + 1,
                updated_at = excluded.updated_at
        ''', (user_id, news_id, now, now))
        conn.commit()
        conn.close()

    async def record_search_keyword(self, user_id: str, keyword: str) -> None:
        now = _now()
        conn = self._connect()
        conn.execute('''
            INSERT INTO search_keyword_analytics (user_id, keyword, search_count, last_searched_at)
            VALUES (?, ?, 1, ?)
            ON CONFLICT(user_id, keyword) DO UPDATE SET
                search_count = search_keyword_analytics.search_count + 1,
                last_searched_at = excluded.last_searched_at
        ''', (user_id, keyword, now))
        conn.commit()
        conn.close()

    async def get_trending_keywords(self, since: str, limit: int = 10) -> List[Dict[str, Any]]:
        conn = self._connect()
        rows = conn.execute('''
            SELECT keyword, SUM(search_count) AS search_count, MAX(last_searched_at) AS last_searched_at
            FROM search_keyword_analytics
            WHERE last_searched_at >= ?
            GROUP BY keyword
            ORDER BY search_count DESC, last_searched_at DESC
            LIMIT ?
        ''', (since, limit)).fetchall()
        conn.close()
        return [dict(r) for r in rows]

    async def get_user_stats(self, user_id: str, recent_limit: int = 10) -> Dict[str, Any]:
        conn = self._connect()
        totals = conn.execute('''
            SELECT COALESCE(SUM(summary_request_count), 0) AS summaries,
                   COALESCE(SUM(link_click_count), 0) AS clicks
            FROM news_summary_analytics WHERE user_id = ?
        ''', (user_id,)).fetchone()
        searches = conn.execute('''
            SELECT keyword, search_count, last_searched_at FROM search_keyword_analytics
            WHERE user_id = ? ORDER BY last_searched_at DESC LIMIT ?
        ''', (user_id, recent_limit)).fetchall()
        total_searches = conn.execute(
            "SELECT COALESCE(SUM(search_count), 0) AS total FROM search_keyword_analytics WHERE user_id = ?",
            (user_id,),
        ).fetchone()
        bookmark_count = conn.execute(
            "SELECT COUNT(*) AS total FROM bookmarks WHERE user_id = ?", (user_id,)
        ).fetchone()
        conn.close()
        return {
            "totalSummaryRequests": totals["summaries"],
            "totalLinkClicks": totals["clicks"],
            "totalSearches": total_searches["total"],
            "totalBookmarks": bookmark_count["total"],
            "recentSearches": [dict(r) for r in searches],
        }

    # ------------------------------------------------------------
    # Bookmarks

    async def list_bookmarks(self, user_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        query = "SELECT * FROM bookmarks WHERE user_id = ? ORDER BY created_at DESC, id DESC"
        params: List[Any] = [user_id]
        if limit:
            query += " LIMIT ?"
            params.append(limit)
        conn = self._connect()
        rows = conn.execute(query, params).fetchall()
        conn.close()
        return [dict(r) for r in rows]

    async def get_bookmarks_by_ids(self, user_id: str, bookmark_ids: List[str]) -> List[Dict[str, Any]]:
        if not bookmark_ids:
            return []
        placeholders = ",".join("?" for _ in bookmark_ids)
        conn = self._connect()
        rows = conn.execute(
            f"SELECT * FROM bookmarks WHERE user_id = ? AND CAST(id AS TEXT) IN ({placeholders})",
            [user_id, *[str(i) for i in bookmark_ids]],
        ).fetchall()
        conn.close()
        return [dict(r) for r in rows]

    async def add_bookmark(self, bookmark: Dict[str, Any]) -> Dict[str, Any]:
        conn = self._connect()
        try:
            cursor = conn.execute('''
                INSERT INTO bookmarks (user_id, article_id, title, description, link, source, image_url,
                                       category, region, pub_date, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ''', (
                bookmark["user_id"], bookmark["article_id"], bookmark["title"], bookmark.get("description"),
                bookmark["link"], bookmark.get("source"), bookmark.get("image_url"), bookmark.get("category"),
                bookmark.get("region"), bookmark.get("pub_date"), _now(),
            ))
            row = conn.execute("SELECT * FROM bookmarks WHERE id = ?", (cursor.lastrowid,)).fetchone()
            conn.commit()
        except sqlite3.IntegrityError as e:
            raise DuplicateEntryError("Already bookmarked") from e
        finally:
            conn.close()
        return dict(row)

    async def delete_bookmark(self, user_id: str, article_id: str) -> int:
        conn = self._connect()
        cursor = conn.execute("DELETE FROM bookmarks WHERE user_id = ? AND article_id = ?", (user_id, article_id))
        count = cursor.rowcount
        conn.commit()
        conn.close()
        return count

    async def delete_all_bookmarks(self, user_id: str) -> int:
        conn = self._connect()
        cursor = conn.execute("DELETE FROM bookmarks WHERE user_id = ?", (user_id,))
        count = cursor.rowcount
        conn.commit()
        conn.close()
        return count

    # ------------------------------------------------------------
    # Subscribed keywords

    async def list_keywords(self, user_id: str) -> List[Dict[str, Any]]:
        conn = self._connect()
        rows = conn.execute(
            "SELECT * FROM subscribed_keywords WHERE user_id = ? ORDER BY created_at DESC, id DESC", (user_id,)
        ).fetchall()
        conn.close()
        return [dict(r) for r in rows]

    async def list_all_keywords(self) -> List[str]:
        conn = self._connect()
        rows = conn.execute("SELECT keyword FROM subscribed_keywords").fetchall()
        conn.close()
        return [r["keyword"] for r in rows]

    async def add_keyword(self, user_id: str, keyword: str,
                          max_keywords: int = MAX_KEYWORDS_PER_USER) -> Dict[str, Any]:
        conn = self._connect()
        try:
            count = conn.execute(
                "SELECT COUNT(*) AS total FROM subscribed_keywords WHERE user_id = ?", (user_id,)
            ).fetchone()["total"]
            existing = conn.execute(
                "SELECT 1 FROM subscribed_keywords WHERE user_id = ? AND keyword = ?", (user_id, keyword)
            ).fetchone()
            if existing:
                raise DuplicateEntryError("Keyword already subscribed")
            if count >= max_keywords:
                raise KeywordLimitError(f"You can subscribe to at most {max_keywords} keywords")
            cursor = conn.execute(
                "INSERT INTO subscribed_keywords (user_id, keyword, created_at) VALUES (?, ?, ?)",
                (user_id, keyword, _now()),
            )
            row = conn.execute("SELECT * FROM subscribed_keywords WHERE id = ?", (cursor.lastrowid,)).fetchone()
            conn.commit()
        except sqlite3.IntegrityError as e:
            raise DuplicateEntryError("Keyword already subscribed") from e
        finally:
            conn.close()
        return dict(row)

    async def delete_keyword(self, user_id: str, keyword_id: str) -> int:
        conn = self._connect()
        cursor = conn.execute(
            "DELETE FROM subscribed_keywords WHERE user_id = ? AND CAST(id AS TEXT) = ?", (user_id, str(keyword_id))
        )
        count = cursor.rowcount
        conn.commit()
        conn.close()
        return count

    # ------------------------------------------------------------
    # Email subscription settings and delivery logs

    async def get_email_settings(self, user_id: str) -> Optional[Dict[str, Any]]:
        conn = self._connect()
        row = conn.execute("SELECT * FROM email_subscription_settings WHERE user_id = ?", (user_id,)).fetchone()
        conn.close()
        data = _row(row, json_fields=("delivery_days",))
        if data is not None:
            data["enabled"] = bool(data["enabled"])
        return data

    async def upsert_email_settings(self, user_id: str, email: str, enabled: bool,
                                    delivery_days: List[int], delivery_hour: int) -> Dict[str, Any]:
        now = _now()
        conn = self._connect()
        conn.execute('''
            INSERT INTO email_subscription_settings (user_id, email, enabled, delivery_days, delivery_hour,
                                                     created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET
                email = excluded.email,
                enabled = excluded.enabled,
                delivery_days = excluded.delivery_days,
                delivery_hour = excluded.delivery_hour,
                updated_at = excluded.updated_at
        ''', (user_id, email, int(enabled), json.dumps(delivery_days), delivery_hour, now, now))
        conn.commit()
        conn.close()
        return await self.get_email_settings(user_id)

    async def delete_email_settings(self, user_id: str) -> int:
        conn = self._connect()
        cursor = conn.execute("DELETE FROM email_subscription_settings WHERE user_id = ?", (user_id,))
        count = cursor.rowcount
        conn.commit()
        conn.close()
        return count

    async def list_enabled_subscribers(self) -> List[Dict[str, Any]]:
        conn = self._connect()
        rows = conn.execute(
            "SELECT user_id, email, delivery_days, delivery_hour FROM email_subscription_settings WHERE enabled = 1"
        ).fetchall()
        conn.close()
        return [_row(r, json_fields=("delivery_days",)) for r in rows]

    async def mark_digest_sent(self, user_id: str) -> None:
        conn = self._connect()
        conn.execute(
            "UPDATE email_subscription_settings SET last_sent_at = ? WHERE user_id = ?", (_now(), user_id)
        )
        conn.commit()
        conn.close()

    async def log_delivery(self, user_id: str, email: str, status: str, news_count: int,
                           error_message: Optional[str] = None) -> None:
        conn = self._connect()
        conn.execute('''
            INSERT INTO email_delivery_logs (user_id, email, status, news_count, error_message, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
        ''', (user_id, email, status, news_count, error_message, _now()))
        conn.commit()
        conn.close()

    async def list_delivery_logs(self, user_id: str) -> List[Dict[str, Any]]:
        conn = self._connect()
        rows = conn.execute(
            "SELECT * FROM email_delivery_logs WHERE user_id = ? ORDER BY id DESC", (user_id,)
        ).fetchall()
        conn.close()
        return [dict(r) for r in rows]

    # ------------------------------------------------------------
    # Codes

    async def list_codes(self, code_type: str) -> List[Dict[str, Any]]:
        conn = self._connect()
        rows = conn.execute('''
            SELECT id, code, label_ko, label_en, display_order FROM codes
            WHERE code_type = ? AND is_active = 1
            ORDER BY display_order ASC
        ''', (code_type,)).fetchall()
        conn.close()
        return [dict(r) for r in rows]


# Global DB instance
db = NewsDatabase(settings.DATABASE_PATH)


async def init_db():
    await db.init_db()

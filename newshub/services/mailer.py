"""
SMTP mailer and HTML rendering for digest and bookmark emails.
"""
import asyncio
import logging
import smtplib
from datetime import datetime, timedelta, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from html import escape
from typing import Any, Dict, List, Optional, Sequence

from ..core.config import settings
from ..utils.dates import parse_pub_date

logger = logging.getLogger(__name__)

KST = timezone(timedelta(hours=9))


class MailerError(Exception):
    """Raised when an email could not be delivered."""


def _kst(value: Optional[str], fmt: str) -> str:
    parsed = parse_pub_date(value)
    return parsed.astimezone(KST).strftime(fmt) if parsed else ""


def format_korean_datetime(moment: datetime) -> str:
    return moment.astimezone(KST).strftime("%Y. %m. %d. %H:%M")


class Mailer:
    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        from_name: Optional[str] = None,
    ):
        self.host = host or settings.SMTP_HOST
        self.port = port or settings.SMTP_PORT
        self.username = username if username is not None else settings.SMTP_USERNAME
        self.password = password if password is not None else settings.SMTP_PASSWORD
        self.from_name = from_name or settings.SMTP_FROM_NAME

    @property
    def configured(self) -> bool:
        return bool(self.username and self.password)

    def build_message(self, to: str, subject: str, html_body: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = formataddr((self.from_name, self.username or ""))
        msg["To"] = to
        msg.attach(MIMEText(html_body, "html", "utf-8"))
        return msg

    def _send_sync(self, msg: MIMEMultipart, to: str) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=30) as smtp:
            smtp.starttls()
            smtp.login(self.username, self.password)
            smtp.send_message(msg, from_addr=self.username, to_addrs=[to])

    async def send(self, to: str, subject: str, html_body: str) -> None:
        if not self.configured:
            raise MailerError("SMTP credentials are not set. Please check SMTP_USERNAME and SMTP_PASSWORD.")

        logger.info(f"Sending email to {to}...")
        msg = self.build_message(to, subject, html_body)
        try:
            await asyncio.to_thread(self._send_sync, msg, to)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {to}: {e}")
            raise MailerError(f"Failed to send email: {e}") from e
        logger.info(f"Email sent successfully to {to}")


def render_digest_html(news: Sequence[Dict[str, Any]], keywords: Sequence[str],
                       base_url: Optional[str] = None) -> str:
    base_url = base_url or settings.BASE_URL
    items = []
    for index, item in enumerate(news, start=1):
        meta = []
        if item.get("source"):
            meta.append(f"출처: {escape(item['source'])}")
        published = _kst(item.get("pub_date"), "%Y. %m. %d.")
        if published:
            meta.append(published)
        items.append(f"""
      <div class="news-item">
        <div class="news-title">
          <a href="{escape(item.get('link') or '#', quote=True)}" target="_blank">{index}. {escape(item.get('title') or '')}</a>
        </div>
        <div class="news-description">{escape(item.get('description') or '')}</div>
        <div class="news-meta">{' · '.join(meta)}</div>
      </div>""")

    return f"""<!DOCTYPE html>
<html lang="ko">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>뉴스 다이제스트</title>
  <style>
    body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Arial, sans-serif; line-height: 1.6;
           color: #333; max-width: 600px; margin: 0 auto; padding: 20px; background-color: #f5f5f5; }}
    .container {{ background-color: #ffffff; border-radius: 8px; padding: 30px; }}
    h1 {{ color: #2563eb; font-size: 24px; margin-bottom: 10px; }}
    .keywords {{ color: #64748b; font-size: 14px; margin-bottom: 30px; }}
    .news-item {{ border-bottom: 1px solid #e2e8f0; padding: 20px 0; }}
    .news-title a {{ font-size: 18px; font-weight: 600; color: #1e293b; text-decoration: none; }}
    .news-description {{ color: #64748b; font-size: 14px; margin-bottom: 8px; }}
    .news-meta {{ font-size: 12px; color: #94a3b8; }}
    .footer {{ margin-top: 30px; padding-top: 20px; border-top: 1px solid #e2e8f0; text-align: center;
              color: #94a3b8; font-size: 12px; }}
  </style>
</head>
<body>
  <div class="container">
    <h1>📰 오늘의 뉴스 다이제스트</h1>
    <div class="keywords">구독 키워드: {escape(', '.join(keywords))}</div>
{''.join(items)}
    <div class="footer">
      <p>이 이메일은 {escape(settings.SMTP_FROM_NAME)} 구독 서비스에서 발송되었습니다.</p>
      <p>구독을 변경하거나 취소하려면 <a href="{escape(base_url, quote=True)}/mypage" style="color: #2563eb;">마이페이지</a>를 방문하세요.</p>
    </div>
  </div>
</body>
</html>"""


def render_bookmarks_html(bookmarks: Sequence[Dict[str, Any]], generated_at: Optional[datetime] = None) -> str:
    generated = format_korean_datetime(generated_at or datetime.now(timezone.utc))
    sections: List[str] = []
    for index, bookmark in enumerate(bookmarks, start=1):
        summary_html = escape(bookmark.get("summary") or "").replace("\n", "<br />")
        points = bookmark.get("keyPoints") or []
        points_html = ""
        if points:
            points_html = (
                '<ul style="margin: 8px 0 0 20px; padding: 0; color: #1F2933;">'
                + "".join(f'<li style="margin-bottom: 4px;">{escape(p)}</li>' for p in points)
                + "</ul>"
            )
        badges = []
        if bookmark.get("source"):
            badges.append(f'<span style="padding: 2px 8px; border-radius: 999px; background: #E0F2FE; '
                          f'color: #0369A1;">{escape(bookmark["source"])}</span>')
        if bookmark.get("category"):
            badges.append(f'<span style="padding: 2px 8px; border-radius: 999px; background: #F5F3FF; '
                          f'color: #5B21B6;">{escape(bookmark["category"])}</span>')
        published = _kst(bookmark.get("publishedAt"), "%m. %d. %H:%M")
        if published:
            badges.append(f"<span>{published}</span>")

        sections.append(f"""
      <div style="padding: 16px; border: 1px solid #E5E7EB; border-radius: 12px; margin-bottom: 16px; background: #FFFFFF;">
        <div style="font-size: 13px; color: #9CA3AF; margin-bottom: 4px;">기사 {index}</div>
        <h2 style="font-size: 18px; margin: 0 0 8px 0; color: #111827;">
          <a href="{escape(bookmark.get('link') or '#', quote=True)}" target="_blank" rel="noopener noreferrer"
             style="color: #0EA5E9; text-decoration: none;">{escape(bookmark.get('title') or '')}</a>
        </h2>
        <div style="font-size: 13px; color: #6B7280; margin-bottom: 12px;">{' '.join(badges)}</div>
        <div style="font-size: 15px; line-height: 1.5; color: #1F2933;">{summary_html}</div>
        {points_html}
      </div>""")

    return f"""<!DOCTYPE html>
<html lang="ko">
  <head>
    <meta charset="UTF-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1.0" />
    <title>북마크 뉴스 요약</title>
  </head>
  <body style="margin: 0; padding: 0; background: #F3F4F6; font-family: 'Noto Sans KR', Arial, sans-serif;">
    <div style="max-width: 640px; margin: 0 auto; padding: 24px;">
      <div style="background: #FFFFFF; border-radius: 16px; padding: 24px; border: 1px solid #E5E7EB;">
        <h1 style="margin: 0 0 8px 0; font-size: 24px; color: #111827;">선택한 북마크 뉴스 요약</h1>
        <p style="margin: 0 0 16px 0; color: #6B7280; font-size: 14px;">
          AI가 요약한 {len(bookmarks)}개의 북마크 기사를 전달드립니다.<br />
          생성 시각: {generated}
        </p>
{''.join(sections)}
        <p style="margin-top: 24px; font-size: 12px; color: #9CA3AF; text-align: center;">
          본 메일은 사용자가 직접 요청하여 발송되었습니다.
        </p>
      </div>
    </div>
  </body>
</html>"""


# Global instance
mailer = Mailer()

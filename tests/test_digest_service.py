import asyncio
from datetime import datetime, timezone

import pytest

from newshub.services.digest_service import DigestError, DigestService, is_valid_email, kst_weekday
from newshub.services.mailer import MailerError, render_bookmarks_html, render_digest_html

# Monday 09:00 in Seoul
NOW = datetime(2024, 1, 1, 0, 0, tzinfo=timezone.utc)


class FakeMailer:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    async def send(self, to, subject, html_body):
        if self.fail:
            raise MailerError("SMTP credentials are not set")
        self.sent.append((to, subject, html_body))


class FakeSummaries:
    async def summarize_bookmark(self, bookmark):
        return {
            "id": bookmark["id"],
            "title": bookmark["title"],
            "link": bookmark["link"],
            "source": bookmark.get("source"),
            "category": bookmark.get("category"),
            "summary": f"{bookmark['title']} 요약",
            "keyPoints": [],
            "createdAt": bookmark.get("created_at"),
            "publishedAt": bookmark.get("pub_date"),
        }


def run(coro):
    return asyncio.run(coro)


def _service(database, mail=None):
    return DigestService(database=database, mail=mail or FakeMailer(), summaries=FakeSummaries(), clock=lambda: NOW)


def _subscribe(database, user_id="user-1", email="reader@example.com", enabled=True, days=(1, 3, 5),
               keywords=("반도체",)):
    run(database.upsert_email_settings(user_id, email, enabled, list(days), 6))
    for keyword in keywords:
        run(database.add_keyword(user_id, keyword))


def _store_news(database):
    run(database.upsert_summary("n1", "s", [], title="반도체 수출 증가", link="https://e.com/1",
                                source="연합뉴스", pub_date="2023-12-31T12:00:00+00:00"))
    run(database.upsert_summary("n2", "s", [], title="반도체 <신제품> 공개", link="https://e.com/2",
                                pub_date="2023-12-31T20:00:00+00:00"))
    run(database.upsert_summary("n3", "s", [], title="반도체 지난 소식", link="https://e.com/3",
                                pub_date="2023-12-20T00:00:00+00:00"))


def test_kst_weekday():
    assert kst_weekday(datetime(2023, 12, 31, 16, 0, tzinfo=timezone.utc)) == 1
    assert kst_weekday(datetime(2023, 12, 31, 14, 59, tzinfo=timezone.utc)) == 0
    assert kst_weekday(NOW) == 1


def test_is_valid_email():
    assert is_valid_email("reader@example.com")
    assert not is_valid_email("reader@example")
    assert not is_valid_email("no spaces@example.com")
    assert not is_valid_email(None)


def test_send_digest_validation(database):
    service = _service(database)
    with pytest.raises(DigestError) as exc:
        run(service.send_digest(""))
    assert exc.value.status_code == 400

    with pytest.raises(DigestError) as exc:
        run(service.send_digest("user-1"))
    assert exc.value.status_code == 404

    _subscribe(database, enabled=False)
    with pytest.raises(DigestError) as exc:
        run(service.send_digest("user-1"))
    assert exc.value.status_code == 400


def test_not_a_delivery_day(database):
    _subscribe(database, days=(0, 6))
    mail = FakeMailer()
    result = run(_service(database, mail).send_digest("user-1"))
    assert result == {"message": "Today is not a delivery day", "currentDay": 1, "deliveryDays": [0, 6]}
    assert mail.sent == []


def test_no_keywords(database):
    _subscribe(database, keywords=())
    with pytest.raises(DigestError) as exc:
        run(_service(database).send_digest("user-1"))
    assert exc.value.status_code == 404


def test_no_matching_news_is_logged(database):
    _subscribe(database)
    mail = FakeMailer()
    result = run(_service(database, mail).send_digest("user-1"))
    assert result["newsCount"] == 0
    assert mail.sent == []
    log = run(database.list_delivery_logs("user-1"))[0]
    assert (log["status"], log["news_count"]) == ("success", 0)


def test_send_digest_success(database):
    _subscribe(database)
    _store_news(database)
    mail = FakeMailer()

    result = run(_service(database, mail).send_digest("user-1"))
    assert result == {"success": True, "newsCount": 2}

    to, subject, html_body = mail.sent[0]
    assert to == "reader@example.com"
    assert "반도체" in subject
    assert html_body.index("https://e.com/2") < html_body.index("https://e.com/1")
    assert "&lt;신제품&gt;" in html_body
    assert "https://e.com/3" not in html_body

    assert run(database.list_delivery_logs("user-1"))[0]["status"] == "success"
    assert run(database.get_email_settings("user-1"))["last_sent_at"] is not None


def test_send_digest_mail_failure(database):
    _subscribe(database)
    _store_news(database)
    with pytest.raises(DigestError) as exc:
        run(_service(database, FakeMailer(fail=True)).send_digest("user-1"))
    assert exc.value.status_code == 500

    log = run(database.list_delivery_logs("user-1"))[0]
    assert log["status"] == "failed"
    assert log["news_count"] == 2
    assert run(database.get_email_settings("user-1"))["last_sent_at"] is None


def test_collect_news_dedups_across_keywords(database):
    _store_news(database)
    news = run(_service(database).collect_news(["반도체", "수출"], NOW))
    assert [n["news_id"] for n in news] == ["n2", "n1"]


def test_daily_digest_run(database):
    _subscribe(database, user_id="user-1")
    _subscribe(database, user_id="user-2", email="other@example.com", days=(0,))
    _subscribe(database, user_id="user-3", email="third@example.com", keywords=())
    _store_news(database)

    result = run(_service(database).run_daily_digest())
    assert result["currentDay"] == 1
    assert result["processedCount"] == 2
    assert result["successCount"] == 1
    assert result["failedCount"] == 1
    failed = [r for r in result["results"] if not r["success"]]
    assert failed[0]["email"] == "third@example.com"


def _add_bookmarks(database, count, user_id="user-1"):
    ids = []
    for i in range(count):
        row = run(database.add_bookmark({
            "user_id": user_id,
            "article_id": f"rss_{i}",
            "title": f"북마크 {i}",
            "link": f"https://e.com/{i}",
        }))
        ids.append(row["id"])
    return ids


@pytest.mark.parametrize("user_id,email,ids", [
    (None, "reader@example.com", [1]),
    ("user-1", "not-an-email", [1]),
    ("user-1", "reader@example.com", []),
    ("user-1", "reader@example.com", list(range(11))),
])
def test_send_bookmarks_validation(database, user_id, email, ids):
    with pytest.raises(DigestError) as exc:
        run(_service(database).send_bookmarks(user_id, email, ids))
    assert exc.value.status_code == 400


def test_send_bookmarks_not_found(database):
    with pytest.raises(DigestError) as exc:
        run(_service(database).send_bookmarks("user-1", "reader@example.com", [42]))
    assert exc.value.status_code == 404


def test_send_bookmarks_success(database):
    ids = _add_bookmarks(database, 3)
    _add_bookmarks(database, 1, user_id="user-2")
    mail = FakeMailer()

    requested = [ids[2], ids[0], ids[2], str(ids[0])]
    result = run(_service(database, mail).send_bookmarks("user-1", "reader@example.com", requested))
    assert result == {"success": True, "sentCount": 2}

    _, subject, html_body = mail.sent[0]
    assert "(2건)" in subject
    assert html_body.index("북마크 2") < html_body.index("북마크 0")
    assert run(database.list_delivery_logs("user-1"))[0]["news_count"] == 2


def test_render_helpers_escape_markup():
    digest = render_digest_html(
        [{"title": "<script>x</script>", "link": "https://e.com/?a=1&b=2", "pub_date": "2024-01-01T00:00:00+00:00"}],
        ["AI"],
        base_url="https://newshub.example.com",
    )
    assert "<script>x" not in digest
    assert "https://e.com/?a=1&amp;b=2" in digest
    assert "2024. 01. 01." in digest
    assert "https://newshub.example.com/mypage" in digest

    bookmarks = render_bookmarks_html(
        [{"title": "t", "link": "https://e.com", "summary": "첫 줄\n둘째 줄", "keyPoints": ["p<1>"]}],
        NOW,
    )
    assert "첫 줄<br />둘째 줄" in bookmarks
    assert "p&lt;1&gt;" in bookmarks
    assert "2024. 01. 01. 09:00" in bookmarks

import asyncio

import pytest

from newshub.services.crawler import CrawlError
from newshub.services.llm_service import LLMError
from newshub.services.summarizer import BOOKMARK_SUMMARY_UNAVAILABLE, SummaryService, validated_category


class FakeCrawler:
    def __init__(self, content=None):
        self.content = content
        self.urls = []

    async def crawl(self, url):
        self.urls.append(url)
        if self.content is None:
            raise CrawlError("Failed to extract article content")
        return self.content


class FakeLLM:
    def __init__(self, category="technology", available=True, error=None):
        self.category = category
        self.available = available
        self.error = error
        self.contents = []

    async def summarize_article(self, content, api_key=None):
        self.contents.append(content)
        if self.error is not None:
            raise self.error
        return {"summary": "요약입니다.", "key_points": ["포인트 1", "포인트 2"], "category": self.category}


def _service(database, crawler=None, llm=None):
    return SummaryService(database=database, crawler=crawler or FakeCrawler("본문"), llm=llm or FakeLLM())


def _summarize(service, **overrides):
    params = {
        "news_id": "rss_abc",
        "link": "https://www.yna.co.kr/view/1",
        "title": "반도체 지원 확대",
        "description": "정부가 지원을 늘린다",
        "user_id": "user-1",
        "pub_date": "Mon, 01 Jan 2024 00:00:00 GMT",
    }
    params.update(overrides)
    return asyncio.run(service.summarize(**params))


def test_validated_category():
    assert validated_category("Health") == "health"
    assert validated_category("all") is None
    assert validated_category("gossip") is None
    assert validated_category(None) is None


def test_first_call_then_cache_hit(database):
    llm = FakeLLM()
    service = _service(database, llm=llm)

    first = _summarize(service)
    assert first == {
        "summary": "요약입니다.",
        "keyPoints": ["포인트 1", "포인트 2"],
        "category": "technology",
        "fromCache": False,
        "viewCount": 1,
    }
    stored = asyncio.run(database.get_summary("rss_abc"))
    assert stored["pub_date"] == "2024-01-01T00:00:00+00:00"

    second = _summarize(service)
    assert second["fromCache"] is True
    assert second["viewCount"] == 2
    assert second["keyPoints"] == ["포인트 1", "포인트 2"]
    assert len(llm.contents) == 1

    stats = asyncio.run(database.get_user_stats("user-1"))
    assert stats["totalSummaryRequests"] == 2


def test_out_of_enum_category_is_dropped(database):
    service = _service(database, llm=FakeLLM(category="gossip"))
    assert _summarize(service)["category"] is None
    assert asyncio.run(database.get_categories(["rss_abc"])) == {}


def test_missing_api_key(database):
    service = _service(database, llm=FakeLLM(available=False))
    with pytest.raises(LLMError) as exc:
        _summarize(service)
    assert exc.value.status_code == 400

    result = _summarize(service, api_key="client-key")
    assert result["fromCache"] is False


def test_crawl_failure_uses_title_and_description(database):
    llm = FakeLLM()
    service = _service(database, crawler=FakeCrawler(None), llm=llm)
    _summarize(service)
    assert llm.contents == ["반도체 지원 확대\n\n정부가 지원을 늘린다"]


def test_llm_error_propagates(database):
    service = _service(database, llm=FakeLLM(error=LLMError(429, "Rate limit exceeded")))
    with pytest.raises(LLMError) as exc:
        _summarize(service)
    assert exc.value.status_code == 429
    assert asyncio.run(database.get_summary("rss_abc")) is None


def test_view_only_row_is_not_a_cache_hit(database):
    asyncio.run(database.record_view("rss_abc", "반도체 지원 확대", "https://www.yna.co.kr/view/1"))
    result = _summarize(_service(database))
    assert result["fromCache"] is False
    assert result["viewCount"] == 2


def test_anonymous_requests_are_recorded(database):
    _summarize(_service(database), user_id=None)
    assert asyncio.run(database.get_user_stats("Anonymous"))["totalSummaryRequests"] == 1


def test_bookmark_summary_falls_back(database):
    service = _service(database, llm=FakeLLM(error=LLMError(500, "down")))
    bookmark = {
        "id": 7,
        "article_id": "rss_abc",
        "title": "국내 증시 상승",
        "description": "",
        "link": "https://www.yna.co.kr/view/1",
        "source": "연합뉴스",
        "category": None,
        "created_at": "2024-01-01T00:00:00+00:00",
        "pub_date": None,
    }
    result = asyncio.run(service.summarize_bookmark(bookmark))
    assert result["summary"] == BOOKMARK_SUMMARY_UNAVAILABLE
    assert result["category"] == "business"
    assert result["keyPoints"] == []
    assert result["id"] == 7


def test_cache_hit_survives_view_counter_failure(database, monkeypatch):
    service = _service(database)
    _summarize(service)

    async def broken(news_id):
        raise RuntimeError("database is locked")

    monkeypatch.setattr(database, "increment_view_count", broken)
    result = _summarize(service)
    assert result["fromCache"] is True
    assert result["viewCount"] == 2
    assert result["summary"] == "요약입니다."

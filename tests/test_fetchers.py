import asyncio

import pytest

from newshub.models.schemas import Category, FeedDescriptor, Region
from newshub.services.naver_fetcher import NAVER_SOURCE_NAME, NaverNewsFetcher, clean_markup
from newshub.services.rss_fetcher import (
    MAX_ITEMS_PER_FEED,
    FeedUnavailableError,
    RSSFetcher,
    extract_image_from_entry,
    parse_feed,
)
from newshub.utils.cache import TTLCache
from newshub.utils.hashing import generate_news_id

FEED = FeedDescriptor("https://feeds.example.com/world.xml", "Example World", Region.INTERNATIONAL)

CANNED_RSS = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:media="http://search.yahoo.com/mrss/">
  <channel>
    <title>Example World</title>
    <link>https://example.com</link>
    <description>World news</description>
    <item>
      <title>Chipmaker unveils new semiconductor plant</title>
      <link>https://example.com/news/chip</link>
      <description>The company will invest in a new fab.</description>
      <category>Technology</category>
      <pubDate>Tue, 02 Jan 2024 10:00:00 GMT</pubDate>
      <media:thumbnail url="https://img.example.com/chip.jpg" />
    </item>
    <item>
      <title>Quiet morning in the city</title>
      <link>https://example.com/news/morning</link>
      <description>Nothing much happened.</description>
      <pubDate>Mon, 01 Jan 2024 08:00:00 GMT</pubDate>
    </item>
    <item>
      <description>An item without a title or link</description>
      <enclosure url="https://img.example.com/enclosure.png" type="image/png" length="0" />
    </item>
  </channel>
</rss>
"""


def _many_items_feed(count):
    items = "".join(
        f"<item><title>Story {i}</title><link>https://example.com/{i}</link></item>" for i in range(count)
    )
    return f'<?xml version="1.0"?><rss version="2.0"><channel><title>t</title>{items}</channel></rss>'.encode()


def _fetcher_with(body, resolved=None):
    cache = TTLCache(300)
    cache.set(FEED.url, body)
    calls = []

    async def resolver(link):
        calls.append(link)
        return resolved

    return RSSFetcher(cache=cache, image_resolver=resolver), calls


def test_parse_canned_feed():
    fetcher, calls = _fetcher_with(CANNED_RSS, resolved="https://img.example.com/og.jpg")
    articles = asyncio.run(fetcher.fetch(FEED))

    assert len(articles) == 3
    chip, morning, untitled = articles

    assert chip.id == generate_news_id("https://example.com/news/chip", "rss")
    assert chip.source == "Example World"
    assert chip.region == Region.INTERNATIONAL
    assert chip.image_url == "https://img.example.com/chip.jpg"
    assert chip.category == Category.TECHNOLOGY
    assert chip.pub_date == "Tue, 02 Jan 2024 10:00:00 GMT"

    # Only the entry with an http link and no feed image goes through OG lookup.
    assert calls == ["https://example.com/news/morning"]
    assert morning.image_url == "https://img.example.com/og.jpg"
    assert morning.category is None

    assert untitled.title == "No title"
    assert untitled.image_url == "https://img.example.com/enclosure.png"
    assert untitled.pub_date


def test_feed_is_truncated():
    fetcher, _ = _fetcher_with(_many_items_feed(15))
    articles = asyncio.run(fetcher.fetch(FEED))
    assert len(articles) == MAX_ITEMS_PER_FEED
    assert articles[0].title == "Story 0"
    assert articles[0].description == "No description available"


def test_image_resolver_failure_is_ignored():
    cache = TTLCache(300)
    cache.set(FEED.url, CANNED_RSS)

    async def broken(link):
        raise RuntimeError("boom")

    articles = asyncio.run(RSSFetcher(cache=cache, image_resolver=broken).fetch(FEED))
    assert len(articles) == 3
    assert articles[1].image_url is None


def test_unreachable_feed_returns_empty_list():
    async def run():
        fetcher = RSSFetcher(cache=TTLCache(300))
        try:
            return await fetcher.fetch(FeedDescriptor("http://127.0.0.1:9/rss", "Down", Region.DOMESTIC))
        finally:
            await fetcher.close()

    assert asyncio.run(run()) == []


def test_media_content_image():
    entry = {"media_content": [{"url": "https://img.example.com/m.jpg", "medium": "image"}]}
    assert extract_image_from_entry(entry) == "https://img.example.com/m.jpg"
    video = {"media_content": [{"url": "https://v.example.com/m.mp4", "medium": "video", "type": "video/mp4"}]}
    assert extract_image_from_entry(video) is None


def test_parse_feed_with_garbage_raises():
    with pytest.raises(FeedUnavailableError, match="Unparsable"):
        parse_feed(b"this is not xml at all <<<")


def test_clean_markup():
    assert clean_markup("<b>삼성</b>전자 &quot;실적&quot; 발표") == '삼성전자 "실적" 발표'
    assert clean_markup("It&apos;s <B>done</B>") == "It's done"


def test_naver_item_to_article():
    fetcher = NaverNewsFetcher(client_id="id", client_secret="secret")
    article = fetcher.item_to_article({
        "title": "<b>반도체</b> 수출 증가",
        "description": "반도체 &quot;수출&quot;이 늘었다",
        "originallink": "https://www.yna.co.kr/view/1",
        "link": "https://n.news.naver.com/article/1",
        "pubDate": "Mon, 01 Jan 2024 09:00:00 +0900",
    })
    assert article.link == "https://www.yna.co.kr/view/1"
    assert article.id == generate_news_id("https://www.yna.co.kr/view/1", "naver")
    assert article.title == "반도체 수출 증가"
    assert article.source == NAVER_SOURCE_NAME
    assert article.region == Region.DOMESTIC
    assert article.category == Category.BUSINESS


def test_naver_without_credentials_returns_empty():
    fetcher = NaverNewsFetcher(client_id="", client_secret="")
    assert not fetcher.configured
    assert asyncio.run(fetcher.fetch("최신뉴스")) == []

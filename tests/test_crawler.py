import asyncio

import pytest

from newshub.services.crawler import (
    ArticleCrawler,
    CrawlError,
    DomainNotAllowedError,
    extract_article_text,
    extract_body_text,
    is_domain_allowed,
)

PARAGRAPHS = [
    "정부는 오늘 반도체 산업에 대한 대규모 지원 방안을 발표했다.",
    "이번 방안에는 세액 공제 확대와 연구개발 자금 지원이 포함되어 있다.",
    "업계는 이번 발표가 국내 공급망 강화에 도움이 될 것으로 기대하고 있다.",
    "전문가들은 장기적인 인력 양성 계획도 함께 마련되어야 한다고 지적했다.",
]


def _lines(paragraphs):
    return "\n".join(f"<p>{p}</p>" for p in paragraphs)


NAVER_HTML = f"""<html><body>
<div id="header-area">네이버 뉴스 메뉴</div>
<div id="dic_area">
{_lines(PARAGRAPHS)}
<script>var tracking = true;</script>
짧은 줄
</div>
</body></html>"""

GENERIC_HTML = f"""<html><body>
<nav>Home | World | Business</nav>
<article class="news-article">
{_lines(PARAGRAPHS)}
<div class="related-links">관련 기사: 다른 반도체 뉴스 보러 가기 링크 모음</div>
<aside>구독하고 최신 소식을 받아보세요 지금 바로</aside>
</article>
</body></html>"""


def test_is_domain_allowed():
    domains = ["naver.com", "yna.co.kr"]
    assert is_domain_allowed("https://n.news.naver.com/article/1", domains)
    assert is_domain_allowed("https://yna.co.kr/view/1", domains)
    assert is_domain_allowed("https://WWW.YNA.CO.KR/view/1", domains)
    assert not is_domain_allowed("https://evilnaver.com/x", domains)
    assert not is_domain_allowed("https://naver.com.evil.org/x", domains)
    assert not is_domain_allowed("not a url", domains)


def test_extract_naver_article():
    text = extract_article_text(NAVER_HTML, "https://n.news.naver.com/mnews/article/001/1")
    assert text.split("\n") == PARAGRAPHS
    assert "tracking" not in text


def test_extract_generic_article_removes_noise():
    text = extract_article_text(GENERIC_HTML, "https://www.yna.co.kr/view/1")
    assert text.split("\n") == PARAGRAPHS
    assert "관련 기사" not in text
    assert "구독" not in text


def test_short_article_is_rejected():
    html = "<html><body><article><p>너무 짧은 기사 본문입니다.</p></article></body></html>"
    assert extract_article_text(html, "https://www.yna.co.kr/view/1") is None


def test_body_fallback():
    html = f"<html><body>\n{_lines(PARAGRAPHS)}\n<span>짧은 문장</span>\n</body></html>"
    assert extract_article_text(html, "https://www.yna.co.kr/view/1") is None
    assert extract_body_text(html).split("\n") == PARAGRAPHS


def test_disallowed_domain_is_rejected():
    crawler = ArticleCrawler(allowed_domains=["naver.com"])
    with pytest.raises(DomainNotAllowedError):
        asyncio.run(crawler.crawl("https://example.org/article"))


def test_retries_then_fails():
    delays = []

    async def record(seconds):
        delays.append(seconds)

    crawler = ArticleCrawler(allowed_domains=["127.0.0.1"], sleep=record)
    with pytest.raises(CrawlError) as exc:
        asyncio.run(crawler.crawl("http://127.0.0.1:9/article"))

    assert type(exc.value) is CrawlError
    assert delays == [2.0, 2.0]

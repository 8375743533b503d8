"""
RSS feed sources.  Domestic and international outlets are managed here in
one place; the list is static and loaded once at import time.
"""
from typing import List

from ..models.schemas import FeedDescriptor, Region

RSS_FEEDS: List[FeedDescriptor] = [
    # International news
    FeedDescriptor("https://feeds.bbci.co.uk/news/world/rss.xml", "BBC World", Region.INTERNATIONAL),
    FeedDescriptor("https://www.theguardian.com/world/rss", "The Guardian", Region.INTERNATIONAL),
    FeedDescriptor("https://rss.nytimes.com/services/xml/rss/nyt/World.xml", "NY Times World", Region.INTERNATIONAL),
    FeedDescriptor("https://www.reddit.com/r/worldnews/.rss", "Reddit World News", Region.INTERNATIONAL),
    FeedDescriptor("http://rss.cnn.com/rss/edition_world.rss", "CNN World", Region.INTERNATIONAL),
    # Technology
    FeedDescriptor("https://feeds.feedburner.com/TechCrunch/", "TechCrunch", Region.INTERNATIONAL),
    FeedDescriptor("https://www.technologyreview.com/topnews.rss", "MIT Technology Review", Region.INTERNATIONAL),
    # Domestic news
    FeedDescriptor("https://www.yna.co.kr/rss/society.xml", "연합뉴스 사회", Region.DOMESTIC),
    FeedDescriptor("https://www.yna.co.kr/rss/industry.xml", "연합뉴스 산업", Region.DOMESTIC),
    FeedDescriptor("https://news.sbs.co.kr/news/newsflashRssFeed.do?plink=RSSREADER", "SBS 뉴스", Region.DOMESTIC),
]

# Queries used to pull a broad domestic slice from the Naver search API.
NAVER_DEFAULT_QUERIES: List[str] = [
    "최신뉴스", "IT", "경제", "정치", "사회", "과학", "건강", "스포츠", "연예", "엔터테인먼트",
]
NAVER_RESULTS_PER_QUERY = 4

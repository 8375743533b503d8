import asyncio

import pytest

from newshub.core.database import NewsDatabase
from newshub.models.schemas import Article, Region
from newshub.utils.hashing import generate_news_id


@pytest.fixture
def database(tmp_path):
    database = NewsDatabase(str(tmp_path / "newshub-test.db"))
    asyncio.run(database.init_db())
    return database


def make_article(link, title, pub_date="Mon, 01 Jan 2024 00:00:00 GMT", prefix="rss",
                 region=Region.INTERNATIONAL, category=None, description=""):
    return Article(
        id=generate_news_id(link, prefix),
        title=title,
        description=description,
        link=link,
        pub_date=pub_date,
        source="Test Source",
        category=category,
        region=region,
    )


@pytest.fixture
def article_factory():
    return make_article


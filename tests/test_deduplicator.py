import pytest

from newshub.services.deduplicator import calculate_similarity, deduplicate_articles, normalize_title


def test_similarity_basics():
    assert calculate_similarity("", "") == 1.0
    assert calculate_similarity("abc", "abc") == 1.0
    assert calculate_similarity("abcd", "abce") == 0.75


def test_normalize_title_keeps_hangul_and_words():
    assert normalize_title("  삼성전자,  실적 발표!! ") == "삼성전자 실적 발표"
    assert normalize_title("Breaking: AI News") == "breaking ai news"


def test_same_id_keeps_first(article_factory):
    first = article_factory("https://e.com/same", "First title")
    second = article_factory("https://e.com/same", "Completely different headline")
    assert deduplicate_articles([first, second]) == [first]


def test_punctuation_variant_is_dropped(article_factory):
    a = article_factory("https://e.com/1", "삼성전자 실적 발표")
    b = article_factory("https://e.com/2", "삼성전자 실적 발표!!")
    assert deduplicate_articles([a, b]) == [a]


def test_near_duplicate_title_is_dropped(article_factory):
    a = article_factory("https://e.com/1", "Apple unveils new iPhone today")
    b = article_factory("https://e.com/2", "Apple unveils new iPhones today")
    assert deduplicate_articles([a, b]) == [a]


@pytest.mark.parametrize("threshold", [0.75, 0.8, 0.85])
def test_unrelated_titles_are_kept(article_factory, threshold):
    a = article_factory("https://e.com/1", "AI 규제 법안 통과")
    b = article_factory("https://e.com/2", "월드컵 축구 결승전 결과")
    assert deduplicate_articles([a, b], similarity_threshold=threshold) == [a, b]


def test_deduplication_is_idempotent(article_factory):
    articles = [
        article_factory("https://e.com/1", "삼성전자 실적 발표"),
        article_factory("https://e.com/2", "삼성전자 실적 발표!!"),
        article_factory("https://e.com/1", "duplicate id"),
        article_factory("https://e.com/3", "Apple unveils new iPhone today"),
        article_factory("https://e.com/4", "Apple unveils new iPhones today"),
        article_factory("https://e.com/5", "월드컵 축구 결승전 결과"),
    ]
    once = deduplicate_articles(articles)
    assert [a.link for a in once] == ["https://e.com/1", "https://e.com/3", "https://e.com/5"]
    assert deduplicate_articles(once) == once


def test_titles_without_words_are_compared_by_edit_distance(article_factory):
    a = article_factory("https://e.com/1", "!!!")
    b = article_factory("https://e.com/2", "???")
    assert deduplicate_articles([a, b]) == [a, b]

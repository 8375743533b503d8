import asyncio

import pytest

from newshub.core.llm_config import LLMConfig, LLMManager
from newshub.services.llm_service import LLMError, LLMService, parse_summary_response

FULL_RESPONSE = """[요약]
정부가 반도체 산업 지원을 확대한다. 세액 공제가 늘어난다.

[핵심 포인트]
- 세액 공제 확대
-  연구개발 지원
일반 문장은 무시된다

[카테고리]
Business.
"""


def _service(api_key="test-key", base_url="http://127.0.0.1:9"):
    service = LLMService()
    service.config = LLMConfig(provider="openai", model="gpt-4o-mini", api_key=api_key, base_url=base_url)
    service.models_ranked = ["gpt-4o-mini"]
    return service


def _stub_response(service, content=None, error=None):
    calls = []

    async def fake(messages, **kwargs):
        calls.append((messages, kwargs))
        if error is not None:
            raise error
        return {"choices": [{"message": {"content": content}}]}

    service._make_request = fake
    return calls


def test_parse_summary_response():
    summary, key_points, category = parse_summary_response(FULL_RESPONSE)
    assert summary == "정부가 반도체 산업 지원을 확대한다. 세액 공제가 늘어난다."
    assert key_points == ["세액 공제 확대", "연구개발 지원"]
    assert category == "business"


def test_parse_summary_without_sections():
    summary, key_points, category = parse_summary_response("그냥 요약입니다.")
    assert summary == "그냥 요약입니다."
    assert key_points == []
    assert category is None


def test_summarize_article_truncates_content():
    service = _service()
    calls = _stub_response(service, FULL_RESPONSE)
    result = asyncio.run(service.summarize_article("가" * 10000))

    assert result["category"] == "business"
    assert result["key_points"] == ["세액 공제 확대", "연구개발 지원"]
    user_message = calls[0][0][1]["content"]
    assert user_message.count("가") == 6000


def test_spellcheck_detects_typo():
    service = _service()
    calls = _stub_response(service, '{"hasTypo": true, "corrected": "인공지능"}')
    assert asyncio.run(service.correct_spelling("인곡지능")) == {"corrected": "인공지능", "hasTypo": True}
    assert calls[0][1]["json_mode"] is True


def test_spellcheck_repairs_malformed_json():
    service = _service()
    _stub_response(service, '{"hasTypo": true, "corrected": "machine learning"')
    result = asyncio.run(service.correct_spelling("machin learning"))
    assert result == {"corrected": "machine learning", "hasTypo": True}


def test_spellcheck_same_word_is_not_a_typo():
    service = _service()
    _stub_response(service, '{"hasTypo": true, "corrected": "양자컴퓨터"}')
    assert asyncio.run(service.correct_spelling("양자컴퓨터")) == {"corrected": "양자컴퓨터", "hasTypo": False}


def test_spellcheck_falls_back_on_error():
    service = _service()
    _stub_response(service, error=LLMError(429, "Rate limit exceeded"))
    assert asyncio.run(service.correct_spelling("반도채")) == {"corrected": "반도채", "hasTypo": False}


def test_spellcheck_without_key_returns_keyword():
    service = _service(api_key=None)
    calls = _stub_response(service, '{"hasTypo": true, "corrected": "x"}')
    assert asyncio.run(service.correct_spelling("반도채")) == {"corrected": "반도채", "hasTypo": False}
    assert calls == []


def test_request_without_key_is_rejected():
    service = _service(api_key=None)
    with pytest.raises(LLMError) as exc:
        asyncio.run(service._make_request([{"role": "user", "content": "hi"}]))
    assert exc.value.status_code == 400


def test_request_without_config_is_rejected():
    service = _service()
    service.config = None
    with pytest.raises(LLMError) as exc:
        asyncio.run(service._make_request([]))
    assert exc.value.status_code == 500


def test_unreachable_provider_reports_500():
    async def run():
        service = _service(base_url="http://127.0.0.1:9/v1")
        try:
            await service._make_request([{"role": "user", "content": "hi"}])
        finally:
            await service.close()

    with pytest.raises(LLMError) as exc:
        asyncio.run(run())
    assert exc.value.status_code == 500


def test_exhausted_models_are_skipped():
    service = _service()
    service.models_ranked = ["exhausted-test-model"]
    LLMManager.mark_exhausted("exhausted-test-model", "test-key")

    async def run():
        try:
            await service._make_request([{"role": "user", "content": "hi"}])
        finally:
            await service.close()

    try:
        with pytest.raises(LLMError) as exc:
            asyncio.run(run())
        assert exc.value.status_code == 429
    finally:
        LLMManager._exhausted_models.clear()


class FakeResponse:
    def __init__(self, status, body):
        self.status = status
        self.body = body
        self.reason = "Too Many Requests" if status == 429 else "OK"

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def json(self):
        return self.body

    async def text(self):
        return str(self.body)


class RateLimitedSession:
    """Answers 429 for one bearer token and a canned summary for the rest."""

    closed = False

    def __init__(self, limited_key):
        self.limited_key = limited_key
        self.authorizations = []

    def post(self, url, headers=None, json=None):
        self.authorizations.append(headers["Authorization"])
        if headers["Authorization"] == f"Bearer {self.limited_key}":
            return FakeResponse(429, {"error": "rate limited"})
        return FakeResponse(200, {"choices": [{"message": {"content": FULL_RESPONSE}}]})


def test_rate_limit_is_scoped_to_the_api_key():
    service = _service()
    service.models_ranked = ["gpt-4o-mini", "gpt-4o"]
    session = RateLimitedSession("user-a")
    service.session = session

    try:
        with pytest.raises(LLMError) as exc:
            asyncio.run(service.summarize_article("본문", api_key="user-a"))
        assert exc.value.status_code == 429
        assert LLMManager.is_exhausted("gpt-4o-mini", "user-a")

        result = asyncio.run(service.summarize_article("본문", api_key="user-b"))
        assert result["category"] == "business"
        assert session.authorizations[-1] == "Bearer user-b"

        asyncio.run(service.summarize_article("본문"))
        assert session.authorizations[-1] == "Bearer test-key"
        assert not LLMManager.is_exhausted("gpt-4o-mini", "test-key")
    finally:
        LLMManager._exhausted_models.clear()

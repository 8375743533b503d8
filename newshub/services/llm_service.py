"""
LLM Service - OpenAI-compatible chat completions (OpenAI, Groq)
"""
import asyncio
import logging
from typing import List, Dict, Any, Optional, Tuple
import re

import aiohttp
import json_repair

from ..core.llm_config import LLMConfig, LLMManager

logger = logging.getLogger(__name__)

LLM_TIMEOUT_SECONDS = 30
MAX_CONTENT_CHARS = 6000

SUMMARY_SYSTEM_PROMPT = """당신은 뉴스 기사를 분석하는 전문가입니다.
다음 형식으로 응답해주세요:

[요약]
(3-5문장으로 핵심 내용 요약)

[핵심 포인트]
- (핵심 포인트 1)
- (핵심 포인트 2)
- (핵심 포인트 3)

[카테고리]
(world, politics, technology, business, science, health, sports, entertainment 중 하나)

규칙:
1. 핵심 내용만 간결하게 요약
2. 중요한 사실과 수치 포함
3. 객관적이고 중립적인 톤 유지
4. 300자 이내로 작성
5. 한국어로 작성"""

SPELLCHECK_SYSTEM_PROMPT = """당신은 검색어 오타를 교정하는 전문가입니다.
사용자가 입력한 검색어에 오타가 있는지 판단하고, 오타가 있다면 올바른 단어로 수정하세요.
반드시 다음 JSON 형식으로만 응답하세요:
{"hasTypo": true 또는 false, "corrected": "수정된 검색어 또는 원본 검색어"}

규칙:
1. 한글, 영문, 숫자 모두 검사
2. 맥락을 고려하여 의미 있는 단어로 수정
3. 띄어쓰기 오류도 교정
4. 너무 짧은 단어(1-2글자)는 오타 판단 신중히

예시:
입력: "인곡지능" -> {"hasTypo": true, "corrected": "인공지능"}
입력: "양자컴퓨터" -> {"hasTypo": false, "corrected": "양자컴퓨터"}
입력: "machin learning" -> {"hasTypo": true, "corrected": "machine learning"}"""

SUMMARY_MARKER = "[요약]"
KEY_POINTS_MARKER = "[핵심 포인트]"
CATEGORY_MARKER = "[카테고리]"
EMPTY_SUMMARY = "요약을 생성할 수 없습니다."


class LLMError(Exception):
    """Upstream LLM failure carrying the HTTP status to report to the client."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def parse_summary_response(text: str) -> Tuple[str, List[str], Optional[str]]:
    """Split a ``[요약] / [핵심 포인트] / [카테고리]`` response into its parts."""
    text = text or ""
    category: Optional[str] = None
    if CATEGORY_MARKER in text:
        text, category_text = text.split(CATEGORY_MARKER, 1)
        category_text = category_text.strip().splitlines()[0] if category_text.strip() else ""
        category = re.sub(r"[^a-z]", "", category_text.lower()) or None

    parts = text.split(KEY_POINTS_MARKER, 1)
    summary = parts[0].replace(SUMMARY_MARKER, "").strip()

    key_points: List[str] = []
    if len(parts) > 1:
        for line in parts[1].strip().split("\n"):
            line = line.strip()
            if line.startswith("-"):
                key_points.append(re.sub(r"^-\s*", "", line))

    return summary, key_points, category


class LLMService:
    def __init__(self):
        try:
            self.config: Optional[LLMConfig] = LLMManager.get_config_from_env()
        except Exception as e:
            logger.warning(f"LLM config load failed: {e}; running in disabled mode.")
            self.config = None

        self.session: Optional[aiohttp.ClientSession] = None
        self.models_ranked: List[str] = []

        if self.config:
            provider_info = LLMManager.PROVIDERS.get(self.config.provider, {})
            models_info = provider_info.get("models", {})
            ranked = [self.config.model] + [m for m in models_info if m != self.config.model]
            self.models_ranked = ranked
            logger.info(f"LLM initialized ({self.config.provider}) with model fallback order: {self.models_ranked}")
        else:
            logger.info("LLM initialized in disabled mode.")

    @property
    def available(self) -> bool:
        return bool(self.config and self.config.api_key)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=LLM_TIMEOUT_SECONDS))
        return self.session

    async def close(self):
        if self.session and not self.session.closed:
            await self.session.close()

    async def _make_request(self, messages: List[Dict[str, str]], api_key: Optional[str] = None,
                            **kwargs) -> Dict[str, Any]:
        if not self.config:
            raise LLMError(500, "LLM is not configured.")
        key = api_key or self.config.api_key
        if not key:
            raise LLMError(400, "API key is required")

        session = await self._get_session()
        last_error: Optional[LLMError] = None

        for model_name in self.models_ranked or [self.config.model]:
            if LLMManager.is_exhausted(model_name, key):
                continue

            headers = {
                "Authorization": f"Bearer {key}",
                "Content-Type": "application/json",
            }
            payload = {
                "model": model_name,
                "messages": messages,
                "max_tokens": kwargs.get("max_tokens", self.config.max_tokens),
                "temperature": kwargs.get("temperature", self.config.temperature),
            }
            if kwargs.get("json_mode", False):
                payload["response_format"] = {"type": "json_object"}

            url = f"{self.config.base_url}/chat/completions"

            try:
                async with session.post(url, headers=headers, json=payload) as response:
                    if response.status == 200:
                        return await response.json()
                    error_text = await response.text()
                    logger.warning(f"{model_name} failed [{response.status}]: {error_text}")
                    if response.status == 401:
                        raise LLMError(401, "Invalid API key. Please check your API key in settings.")
                    if response.status == 429 or "quota" in error_text.lower():
                        LLMManager.mark_exhausted(model_name, key)
                        last_error = LLMError(429, "Rate limit exceeded. Please try again later.")
                        continue
                    raise LLMError(response.status, f"LLM API error: {response.reason or response.status}")
            except LLMError:
                raise
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.warning(f"{model_name} request failed: {e}")
                last_error = LLMError(500, "Failed to call the LLM API. Please check your API key.")

        logger.error(f"All LLM models failed: {last_error.message if last_error else 'all models exhausted'}")
        raise last_error or LLMError(429, "Rate limit exceeded. Please try again later.")

    @staticmethod
    def _content(response: Dict[str, Any]) -> str:
        try:
            return response["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError):
            return ""

    # ------------------------------------------------------------

    async def summarize_article(self, content: str, api_key: Optional[str] = None) -> Dict[str, Any]:
        """Summarize article text; raises ``LLMError`` for upstream failures."""
        messages = [
            {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
            {"role": "user", "content": f"다음 뉴스 기사를 분석해주세요:\n\n{content[:MAX_CONTENT_CHARS]}"},
        ]
        response = await self._make_request(messages, api_key=api_key, max_tokens=800, temperature=0.3)
        text = self._content(response) or EMPTY_SUMMARY
        summary, key_points, category = parse_summary_response(text)
        logger.info("Summary generated successfully")
        return {"summary": summary, "key_points": key_points, "category": category}

    async def correct_spelling(self, keyword: str) -> Dict[str, Any]:
        """Return ``{corrected, hasTypo}``; any failure leaves the keyword unchanged."""
        fallback = {"corrected": keyword, "hasTypo": False}
        if not self.available:
            logger.warning("LLM API key not found, skipping spellcheck")
            return fallback

        messages = [
            {"role": "system", "content": SPELLCHECK_SYSTEM_PROMPT},
            {"role": "user", "content": keyword},
        ]
        try:
            response = await self._make_request(messages, json_mode=True, max_tokens=100, temperature=0.1)
            result = json_repair.loads(self._content(response))
        except Exception as e:
            logger.error(f"Spellcheck failed: {e}")
            return fallback

        if not isinstance(result, dict):
            logger.warning(f"Unexpected spellcheck response: {result}")
            return fallback

        corrected = str(result.get("corrected") or keyword).strip() or keyword
        has_typo = bool(result.get("hasTypo")) and corrected != keyword
        if has_typo:
            logger.info(f"Typo detected: '{keyword}' -> '{corrected}'")
        return {"corrected": corrected if has_typo else keyword, "hasTypo": has_typo}


# Global instance
llm_service = LLMService()

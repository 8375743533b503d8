"""
LLM Configuration - OpenAI-compatible chat completion providers
"""
import hashlib
import time
from typing import Dict, Optional, Tuple
from dataclasses import dataclass

from .config import settings


@dataclass
class LLMConfig:
    provider: str
    model: str
    api_key: Optional[str]
    base_url: Optional[str] = None
    max_tokens: int = 800
    temperature: float = 0.3


class LLMManager:
    # Exhausted models per API key fingerprint, with a cooldown period
    _exhausted_models: Dict[Tuple[str, str], float] = {}

    COOLDOWN_SECONDS = 300

    # Available providers and models.  Both expose the OpenAI
    # ``/chat/completions`` interface.
    PROVIDERS = {
        "openai": {
            "name": "OpenAI",
            "base_url": "https://api.openai.com/v1",
            "key_env": "OPENAI_API_KEY",
            "models": {
                "gpt-4o-mini": {"name": "GPT-4o mini"},
                "gpt-4o": {"name": "GPT-4o"},
            },
        },
        "groq": {
            "name": "Groq",
            "base_url": "https://api.groq.com/openai/v1",
            "key_env": "GROQ_API_KEY",
            "models": {
                "llama-3.1-8b-instant": {"name": "Llama 3.1 8B (Ultra Fast)"},
                "llama-3.3-70b-versatile": {"name": "Llama 3.3 70B"},
            },
        },
    }

    @classmethod
    def get_config_from_env(cls, api_key_override: Optional[str] = None) -> LLMConfig:
        """Build the config for the provider selected by ``LLM_PROVIDER``.

        ``api_key_override`` lets a caller supply a per-request key (the
        summarize endpoint accepts one from the client).  The key may still be
        ``None``; callers check before making requests.
        """
        provider = settings.LLM_PROVIDER
        if provider not in cls.PROVIDERS:
            raise ValueError(f"Unsupported LLM provider: {provider}")

        meta = cls.PROVIDERS[provider]
        # Models outside the table are passed through to the provider as-is.
        model = settings.LLM_MODEL or next(iter(meta["models"]))

        return LLMConfig(
            provider=provider,
            model=model,
            api_key=api_key_override or getattr(settings, meta["key_env"]),
            base_url=settings.LLM_BASE_URL or meta["base_url"],
            max_tokens=settings.LLM_MAX_TOKENS,
            temperature=settings.LLM_TEMPERATURE,
        )

    @staticmethod
    def _cooldown_key(model: str, api_key: Optional[str]) -> Tuple[str, str]:
        fingerprint = hashlib.sha256((api_key or "").encode("utf-8")).hexdigest()[:16]
        return fingerprint, model

    @classmethod
    def mark_exhausted(cls, model: str, api_key: Optional[str] = None) -> None:
        cls._exhausted_models[cls._cooldown_key(model, api_key)] = time.time() + cls.COOLDOWN_SECONDS

    @classmethod
    def is_exhausted(cls, model: str, api_key: Optional[str] = None) -> bool:
        key = cls._cooldown_key(model, api_key)
        until = cls._exhausted_models.get(key)
        if until is None:
            return False
        if time.time() >= until:
            del cls._exhausted_models[key]
            return False
        return True

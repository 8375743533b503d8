"""
Application configuration management.

This module defines a ``Settings`` dataclass that reads its values from
environment variables at instantiation time.  Each configuration option has
a reasonable default which can be overridden by setting the corresponding
environment variable.  Credentials for third-party services (Naver search,
Papago translation, the LLM provider and SMTP) are optional: when they are
missing the dependent feature degrades instead of failing at startup.
"""

from dataclasses import dataclass, field
import os
from typing import List, Optional


def _split_env(name: str, default: str) -> List[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


DEFAULT_CRAWL_DOMAINS = ",".join([
    "naver.com",
    "daum.net",
    "yna.co.kr",
    "sbs.co.kr",
    "kbs.co.kr",
    "imbc.com",
    "chosun.com",
    "joongang.co.kr",
    "donga.com",
    "hani.co.kr",
    "khan.co.kr",
    "mk.co.kr",
    "hankyung.com",
    "etnews.com",
    "zdnet.co.kr",
    "newsis.com",
    "news1.kr",
    "bbc.co.uk",
    "bbc.com",
    "theguardian.com",
    "nytimes.com",
    "cnn.com",
    "reddit.com",
    "techcrunch.com",
    "technologyreview.com",
])


@dataclass
class Settings:
    """Configuration values loaded from environment variables with defaults."""

    # Application settings
    ENVIRONMENT: str = field(default_factory=lambda: os.getenv("ENVIRONMENT", "development"))
    PORT: int = field(default_factory=lambda: int(os.getenv("PORT", "8000")))
    LOG_LEVEL: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    BASE_URL: str = field(default_factory=lambda: os.getenv("BASE_URL", "http://localhost:8000"))

    # Database
    DATABASE_PATH: str = field(default_factory=lambda: os.getenv("DATABASE_PATH", "newshub.db"))

    # Naver search API (domestic news) and Naver Cloud Papago (translation)
    NAVER_CLIENT_ID: Optional[str] = field(default_factory=lambda: os.getenv("NAVER_CLIENT_ID"))
    NAVER_CLIENT_SECRET: Optional[str] = field(default_factory=lambda: os.getenv("NAVER_CLIENT_SECRET"))
    NAVER_CLOUD_CLIENT_ID: Optional[str] = field(default_factory=lambda: os.getenv("NAVER_CLOUD_CLIENT_ID"))
    NAVER_CLOUD_CLIENT_SECRET: Optional[str] = field(default_factory=lambda: os.getenv("NAVER_CLOUD_CLIENT_SECRET"))

    # LLM configuration
    LLM_PROVIDER: str = field(default_factory=lambda: os.getenv("LLM_PROVIDER", "openai").lower())
    # Empty means the provider's first listed model
    LLM_MODEL: Optional[str] = field(default_factory=lambda: os.getenv("LLM_MODEL"))
    LLM_BASE_URL: Optional[str] = field(default_factory=lambda: os.getenv("LLM_BASE_URL"))
    LLM_MAX_TOKENS: int = field(default_factory=lambda: int(os.getenv("LLM_MAX_TOKENS", "800")))
    LLM_TEMPERATURE: float = field(default_factory=lambda: float(os.getenv("LLM_TEMPERATURE", "0.3")))

    # API keys for providers
    OPENAI_API_KEY: Optional[str] = field(default_factory=lambda: os.getenv("OPENAI_API_KEY"))
    GROQ_API_KEY: Optional[str] = field(default_factory=lambda: os.getenv("GROQ_API_KEY"))

    # SMTP (Gmail app passwords work with the defaults)
    SMTP_HOST: str = field(default_factory=lambda: os.getenv("SMTP_HOST", "smtp.gmail.com"))
    SMTP_PORT: int = field(default_factory=lambda: int(os.getenv("SMTP_PORT", "587")))
    SMTP_USERNAME: Optional[str] = field(default_factory=lambda: os.getenv("SMTP_USERNAME"))
    SMTP_PASSWORD: Optional[str] = field(default_factory=lambda: os.getenv("SMTP_PASSWORD"))
    SMTP_FROM_NAME: str = field(default_factory=lambda: os.getenv("SMTP_FROM_NAME", "News Aggregator"))

    # Shared secret for the scheduled digest endpoint.  When unset the
    # endpoint is open, which is only appropriate for local development.
    CRON_SECRET: Optional[str] = field(default_factory=lambda: os.getenv("CRON_SECRET"))

    # Crawling
    CRAWL_ALLOWED_DOMAINS: List[str] = field(
        default_factory=lambda: _split_env("CRAWL_ALLOWED_DOMAINS", DEFAULT_CRAWL_DOMAINS)
    )

    # Cache lifetimes (seconds)
    FEED_CACHE_SECONDS: int = field(default_factory=lambda: int(os.getenv("FEED_CACHE_SECONDS", "300")))
    INTERNATIONAL_CACHE_SECONDS: int = field(
        default_factory=lambda: int(os.getenv("INTERNATIONAL_CACHE_SECONDS", "300"))
    )

    # CORS
    CORS_ORIGINS: List[str] = field(
        default_factory=lambda: _split_env("CORS_ORIGINS", "http://localhost:3000,http://localhost:8000")
    )

    @property
    def is_development(self) -> bool:
        """Return True if the environment is set to development."""
        return self.ENVIRONMENT.lower() == "development"

    @property
    def has_naver_credentials(self) -> bool:
        return bool(self.NAVER_CLIENT_ID and self.NAVER_CLIENT_SECRET)

    @property
    def has_papago_credentials(self) -> bool:
        return bool(self.NAVER_CLOUD_CLIENT_ID and self.NAVER_CLOUD_CLIENT_SECRET)


# Instantiate a single settings object that can be imported across the
# application.
settings = Settings()

from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional, Dict, Any
from dataclasses import dataclass
from enum import Enum


class Category(str, Enum):
    ALL = "all"
    WORLD = "world"
    POLITICS = "politics"
    TECHNOLOGY = "technology"
    BUSINESS = "business"
    SCIENCE = "science"
    HEALTH = "health"
    SPORTS = "sports"
    ENTERTAINMENT = "entertainment"

    @classmethod
    def parse(cls, value: Any) -> Optional["Category"]:
        """Return the member matching ``value`` or None for anything outside the enum."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class Region(str, Enum):
    DOMESTIC = "domestic"
    INTERNATIONAL = "international"


@dataclass(frozen=True)
class FeedDescriptor:
    url: str
    source: str
    region: Region


class Article(BaseModel):
    """A news item normalized into the shape shared by every source."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., description="Deterministic hash of the link with a source prefix")
    title: str = Field(..., description="Article title")
    description: str = Field("", description="Short description or lead")
    link: str = Field(..., description="Canonical article URL")
    pub_date: str = Field(..., alias="pubDate", description="Publication date as provided by the source")
    source: str = Field(..., description="Source or publication name")
    image_url: Optional[str] = Field(None, alias="imageUrl", description="Thumbnail URL, when one was found")
    category: Optional[Category] = Field(None, description="Heuristic or AI-assigned category; None is ambiguous")
    region: Region = Field(..., description="domestic or international")

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class SummarizeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    news_id: Optional[str] = Field(None, alias="newsId")
    link: Optional[str] = None
    title: str = ""
    description: Optional[str] = ""
    api_key: Optional[str] = Field(None, alias="apiKey")
    user_id: Optional[str] = Field(None, alias="userId")
    source: Optional[str] = None
    pub_date: Optional[str] = Field(None, alias="pubDate")


class CrawlRequest(BaseModel):
    url: Optional[str] = None


class NewsViewRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    news_id: Optional[str] = Field(None, alias="newsId")
    title: Optional[str] = ""
    link: Optional[str] = ""


class SpellcheckRequest(BaseModel):
    keyword: Optional[str] = None


class BookmarkCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(None, alias="userId")
    article_id: Optional[str] = Field(None, alias="articleId")
    title: Optional[str] = None
    description: Optional[str] = None
    link: Optional[str] = None
    source: Optional[str] = None
    image_url: Optional[str] = Field(None, alias="imageUrl")
    category: Optional[str] = None
    region: Optional[str] = None
    pub_date: Optional[str] = Field(None, alias="pubDate")


class KeywordCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(None, alias="userId")
    keyword: Optional[str] = None


class EmailSettingsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(None, alias="userId")
    email: Optional[str] = None
    enabled: Optional[bool] = None
    delivery_days: Optional[Any] = Field(None, alias="deliveryDays")
    delivery_hour: Optional[int] = Field(None, alias="deliveryHour")


class SearchKeywordEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(None, alias="userId")
    keyword: Optional[str] = None


class LinkClickEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(None, alias="userId")
    news_id: Optional[str] = Field(None, alias="newsId")


class SendDigestRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(None, alias="userId")


class SendBookmarksRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(None, alias="userId")
    email: Optional[str] = None
    bookmark_ids: Optional[List[Any]] = Field(None, alias="bookmarkIds")


class HealthResponse(BaseModel):
    status: str = Field(..., description="Overall API status ('ok' or 'unhealthy')")
    message: str = Field(..., description="Descriptive health message")
    timestamp: str = Field(..., description="Timestamp of health check (UTC)")
    llm_available: bool = Field(..., description="True if the LLM summarizer is configured")
    naver_available: bool = Field(..., description="True if the Naver search API is configured")

import datetime as dt
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class QueryType(str, Enum):
    """Intent shape of a query; also the primary content channel of a response."""
    EVENTS = "events"
    ARTICLES = "articles"
    DIRECT_ANSWER = "direct-answer"
    UNKNOWN = "unknown"


def _ordered_unique(values) -> List[str]:
    seen = set()
    ordered = []
    for value in values or []:
        key = str(value).strip().lower()
        if key and key not in seen:
            seen.add(key)
            ordered.append(key)
    return ordered


class ChatRequest(BaseModel):
    """Request model for the chat endpoint"""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    query: str
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    previous_query: Optional[str] = Field(default=None, alias="previousQuery")

    @field_validator("query")
    @classmethod
    def _query_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("query must not be empty")
        return value.strip()

    @field_validator("session_id", "previous_query")
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None


class ClassificationResult(BaseModel):
    """Intent shape and topic set of one query. Never mutated after creation."""
    model_config = ConfigDict(frozen=True)

    type: QueryType
    topics: Tuple[str, ...] = ()
    category: Optional[str] = None
    signals: Dict[str, float] = Field(default_factory=dict)

    @field_validator("topics", mode="before")
    @classmethod
    def _sorted_topics(cls, value) -> Tuple[str, ...]:
        return tuple(sorted(set(_ordered_unique(value))))

    def signal(self, name: str) -> float:
        return float(self.signals.get(name, 0.0))


class Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    categories: Tuple[str, ...] = ()
    date: Optional[dt.date] = None
    description: str = ""
    location: Optional[str] = None
    url: Optional[str] = None

    @field_validator("categories", mode="before")
    @classmethod
    def _ordered_categories(cls, value) -> Tuple[str, ...]:
        return tuple(_ordered_unique(value))


class Article(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    body_markdown: str = ""
    categories: Tuple[str, ...] = ()
    url: Optional[str] = None

    @field_validator("categories", mode="before")
    @classmethod
    def _ordered_categories(cls, value) -> Tuple[str, ...]:
        return tuple(_ordered_unique(value))


class StructuredContent(BaseModel):
    articles: List[Article] = Field(default_factory=list)


class DebugInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    classification: ClassificationResult
    match_counts: Dict[str, int] = Field(default_factory=dict, alias="matchCounts")
    degraded_from: Optional[QueryType] = Field(default=None, alias="degradedFrom")
    continuation: bool = False


class ResponsePayload(BaseModel):
    """Response model for the chat endpoint"""
    model_config = ConfigDict(populate_by_name=True)

    type: QueryType
    confidence: int = Field(ge=0, le=100)
    events: List[Event] = Field(default_factory=list)
    structured: StructuredContent = Field(default_factory=StructuredContent)
    answer_markdown: Optional[str] = None
    debug_info: DebugInfo = Field(alias="debugInfo")

    def to_json(self) -> Dict:
        return self.model_dump(mode="json", by_alias=True)


class ErrorResponse(BaseModel):
    """Error body; status_code travels with it but is not serialised."""
    error: str
    stage: Optional[str] = None
    detail: Optional[str] = None
    status_code: int = Field(default=500, exclude=True)

    def to_json(self) -> Dict:
        return self.model_dump(mode="json", exclude_none=True)


class SessionContext(BaseModel):
    """Single-slot continuation memory for one session id."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    session_id: str = Field(alias="sessionId")
    last_query: str = Field(alias="lastQuery")
    last_classification: ClassificationResult = Field(alias="lastClassification")
    updated_at: float = Field(alias="updatedAt")


class SearchRequest(BaseModel):
    """Request model for the stateless search endpoint"""
    query: str = ""
    limit: int = Field(default=24, ge=1, le=80)
    category: Optional[str] = None


class SearchResults(BaseModel):
    intent: str
    events: List[Event] = Field(default_factory=list)
    articles: List[Article] = Field(default_factory=list)


class SearchResponse(BaseModel):
    q: str
    confidence: int
    structured: SearchResults

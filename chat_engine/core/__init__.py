"""
Core domain logic for the Workshop Chat Engine.

Example:
    from chat_engine.core import ChatRequest, QueryType
"""

from chat_engine.core.errors import (
    ChatEngineError,
    EvidenceRetrievalError,
    EvidenceTimeoutError,
    MalformedQueryError,
    SessionStoreError,
    Stage,
    StageFailure,
)
from chat_engine.core.models import (
    Article,
    ChatRequest,
    ClassificationResult,
    ErrorResponse,
    Event,
    QueryType,
    ResponsePayload,
    SearchRequest,
    SearchResponse,
    SessionContext,
)

__all__ = [
    "ChatEngineError",
    "EvidenceRetrievalError",
    "EvidenceTimeoutError",
    "MalformedQueryError",
    "SessionStoreError",
    "Stage",
    "StageFailure",
    "Article",
    "ChatRequest",
    "ClassificationResult",
    "ErrorResponse",
    "Event",
    "QueryType",
    "ResponsePayload",
    "SearchRequest",
    "SearchResponse",
    "SessionContext",
]

from enum import Enum
from typing import Optional


class Stage(str, Enum):
    """Linear request lifecycle of the chat handler."""
    RECEIVED = "received"
    CLASSIFIED = "classified"
    EVIDENCE_FETCHED = "evidence-fetched"
    SCORED = "scored"
    ASSEMBLED = "assembled"
    RESPONDED = "responded"


class ChatEngineError(Exception):
    """Base class for errors the engine reports to callers."""
    error_code = "internal_error"
    status_code = 500


class MalformedQueryError(ChatEngineError):
    error_code = "invalid_request"
    status_code = 400


class EvidenceRetrievalError(ChatEngineError):
    """The evidence store could not be read. Distinct from zero matches."""
    error_code = "evidence_unavailable"
    status_code = 503


class EvidenceTimeoutError(EvidenceRetrievalError):
    error_code = "evidence_timeout"
    status_code = 504


class SessionStoreError(ChatEngineError):
    error_code = "session_store_unavailable"
    status_code = 503


class StageFailure(ChatEngineError):
    """Wraps the failure of one handler stage; carries the stage for observability."""

    def __init__(self, stage: Stage, cause: Exception, detail: Optional[str] = None):
        self.stage = stage
        self.cause = cause
        self.detail = detail or str(cause) or cause.__class__.__name__
        if isinstance(cause, ChatEngineError):
            self.error_code = cause.error_code
            self.status_code = cause.status_code
        super().__init__(f"{stage.value}: {self.detail}")

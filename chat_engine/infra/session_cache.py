import threading
import time
from collections import OrderedDict
from typing import Callable, Optional

from chat_engine.core.models import ClassificationResult, SessionContext
from chat_engine.infra.logger import logger

cache_logger = logger.getChild("SessionCache")


class SessionContextCache:
    """
    Single-slot continuation memory keyed by session id.

    Entries expire after `ttl_seconds` of inactivity; once `max_entries` is
    reached the least recently written session is evicted. Writers to the same
    id are not serialised, the last put wins.
    """

    def __init__(
        self,
        ttl_seconds: float = 1800.0,
        max_entries: int = 10000,
        clock: Callable[[], float] = time.time,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, SessionContext]" = OrderedDict()
        self._lock = threading.Lock()

    def _is_expired(self, context: SessionContext, now: float) -> bool:
        return now - context.updated_at >= self.ttl_seconds

    def get(self, session_id: Optional[str]) -> Optional[SessionContext]:
        if not session_id:
            return None
        now = self._clock()
        with self._lock:
            context = self._entries.get(session_id)
            if context is None:
                return None
            if self._is_expired(context, now):
                del self._entries[session_id]
                return None
            return context

    def put(self, session_id: str, classification: ClassificationResult, query: str) -> SessionContext:
        """Overwrite the session's context and refresh its timestamp."""
        context = SessionContext(
            session_id=session_id,
            last_query=query,
            last_classification=classification,
            updated_at=self._clock(),
        )
        with self._lock:
            self._entries.pop(session_id, None)
            self._entries[session_id] = context
            while len(self._entries) > self.max_entries:
                evicted_id, _ = self._entries.popitem(last=False)
                cache_logger.debug("Evicted session %s (capacity %d)", evicted_id, self.max_entries)
        return context

    def purge_expired(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, context in self._entries.items() if self._is_expired(context, now)]
            for key in expired:
                del self._entries[key]
        if expired:
            cache_logger.info("Purged %d expired sessions", len(expired))
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

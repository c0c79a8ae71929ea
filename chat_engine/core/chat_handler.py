"""
Chat request handler.

Runs one request through the linear lifecycle
received -> classified -> evidence-fetched -> scored -> assembled -> responded
and turns the first failing stage into an ErrorResponse.
"""
import asyncio
import logging
import time
from contextlib import contextmanager, nullcontext
from typing import Dict, List, Optional, Tuple, Union

from pydantic import ValidationError

from chat_engine.core.assembler import ResponseAssembler
from chat_engine.core.classifier import QueryClassifier
from chat_engine.core.errors import (
    ChatEngineError,
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
    SearchResponse,
    SearchResults,
    SessionContext,
)
from chat_engine.core.scorer import ConfidenceScorer
from chat_engine.infra.evidence_store import EvidenceStore, get_evidence_store
from chat_engine.infra.logger import logger
from chat_engine.infra.metrics import record_latency_metric
from chat_engine.infra.session_cache import SessionContextCache
from chat_engine.utils.chat_profiles import ChatPolicy, load_chat_policy
from chat_engine.utils.lexicon import CategoryLexicon

EMPTY_SEARCH_CONFIDENCE = 10


class ChatRequestHandler:
    """Orchestrates classifier, evidence store, scorer and assembler for one request at a time."""

    def __init__(
        self,
        classifier: QueryClassifier,
        store: EvidenceStore,
        scorer: ConfidenceScorer,
        assembler: ResponseAssembler,
        cache: SessionContextCache,
        policy: ChatPolicy,
    ):
        self.classifier = classifier
        self.store = store
        self.scorer = scorer
        self.assembler = assembler
        self.cache = cache
        self.policy = policy
        self.logger = logger.getChild("ChatHandler")
        self.latency_warning_threshold = 1.0

    # ------------------------------------------------------------------
    # Latency profiling
    # ------------------------------------------------------------------
    def _start_latency_session(self, label: str) -> Dict:
        return {"label": label, "start": time.perf_counter(), "stages": []}

    @contextmanager
    def _profile_stage(self, profiler: Dict, stage_name: str):
        stage_start = time.perf_counter()
        try:
            yield
        finally:
            profiler["stages"].append((stage_name, time.perf_counter() - stage_start))

    def _stage(self, profiler: Optional[Dict], stage: Stage):
        if profiler is None:
            return nullcontext()
        return self._profile_stage(profiler, stage.value)

    def _end_latency_session(self, profiler: Dict, **extra_metadata) -> float:
        """Log the per-stage breakdown and append it to the metrics file."""
        total_elapsed = time.perf_counter() - profiler["start"]
        breakdown_parts = [f"{name}={duration * 1000:.1f}ms" for name, duration in profiler["stages"]]
        breakdown_parts.extend(f"{key}={value}" for key, value in extra_metadata.items())
        log_level = logging.WARNING if total_elapsed > self.latency_warning_threshold else logging.INFO
        self.logger.log(
            log_level,
            f"Latency profile ({profiler['label']}): total={total_elapsed * 1000:.1f}ms | {', '.join(breakdown_parts)}",
        )
        record_latency_metric(profiler["label"], profiler["stages"], total_elapsed, extra=extra_metadata)
        return total_elapsed

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------
    @staticmethod
    def parse_request(raw_request) -> ChatRequest:
        if isinstance(raw_request, ChatRequest):
            return raw_request
        if not isinstance(raw_request, dict):
            raise MalformedQueryError("request body must be a JSON object")
        try:
            return ChatRequest.model_validate(raw_request)
        except ValidationError as exc:
            first = exc.errors()[0]
            location = ".".join(str(part) for part in first.get("loc", ())) or "request"
            raise MalformedQueryError(f"{location}: {first.get('msg', 'invalid value')}") from exc

    def resolve_prior_context(self, request: ChatRequest) -> Optional[SessionContext]:
        """
        Explicit previousQuery wins when it differs from the cached last query;
        otherwise the cached context for the session id (if any) is used.
        """
        cached = None
        if request.session_id:
            try:
                cached = self.cache.get(request.session_id)
            except Exception as exc:
                raise SessionStoreError(f"session lookup failed: {exc}") from exc

        if request.previous_query and (cached is None or cached.last_query != request.previous_query):
            return SessionContext(
                session_id=request.session_id or "",
                last_query=request.previous_query,
                last_classification=self.classifier.classify(request.previous_query),
                updated_at=time.time(),
            )
        return cached

    async def fetch_evidence(
        self,
        classification: ClassificationResult,
        category: Optional[str] = None,
    ) -> Tuple[List[Event], List[Article]]:
        """Read events and articles concurrently in worker threads under the evidence timeout."""
        if not classification.topics and not category:
            return [], []
        topics = list(classification.topics)
        reads = asyncio.gather(
            asyncio.to_thread(self.store.find_events, topics, category),
            asyncio.to_thread(self.store.find_articles, topics, category),
        )
        try:
            events, articles = await asyncio.wait_for(reads, timeout=self.policy.evidence_timeout_seconds)
        except asyncio.TimeoutError as exc:
            raise EvidenceTimeoutError(
                f"evidence reads exceeded {self.policy.evidence_timeout_seconds * 1000:.0f}ms"
            ) from exc
        return list(events), list(articles)

    @staticmethod
    def primary_match_count(query_type: QueryType, events: List[Event], articles: List[Article]) -> int:
        if query_type == QueryType.EVENTS:
            return len(events)
        if query_type in (QueryType.ARTICLES, QueryType.DIRECT_ANSWER):
            return len(articles)
        return 0

    def _store_context(self, request: ChatRequest, classification: ClassificationResult) -> None:
        try:
            self.cache.put(request.session_id, classification, request.query)
        except Exception as exc:
            raise SessionStoreError(f"session write failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------
    async def handle(self, raw_request) -> Union[ResponsePayload, ErrorResponse]:
        """
        Process one chat request.

        Args:
            raw_request: Decoded JSON body (dict) or an already-validated ChatRequest

        Returns:
            ResponsePayload on success, ErrorResponse naming the failed stage otherwise
        """
        profiler = self._start_latency_session("chat")
        stage = Stage.RECEIVED
        try:
            with self._stage(profiler, Stage.RECEIVED):
                request = self.parse_request(raw_request)
                prior_context = self.resolve_prior_context(request)

            stage = Stage.CLASSIFIED
            with self._stage(profiler, Stage.CLASSIFIED):
                classification = self.classifier.classify(request.query, prior_context)
            self.logger.debug(
                f"Classified query ({len(request.query)} chars) as {classification.type.value} "
                f"with {len(classification.topics)} topics"
            )

            stage = Stage.EVIDENCE_FETCHED
            with self._stage(profiler, Stage.EVIDENCE_FETCHED):
                try:
                    events, articles = await self.fetch_evidence(classification)
                except EvidenceTimeoutError as exc:
                    if not self.policy.degrade_on_timeout:
                        raise
                    self.logger.warning(f"{exc}; continuing without evidence")
                    events, articles = [], []

            stage = Stage.SCORED
            with self._stage(profiler, Stage.SCORED):
                match_count = self.primary_match_count(classification.type, events, articles)
                confidence = self.scorer.score(classification, match_count)

            stage = Stage.ASSEMBLED
            with self._stage(profiler, Stage.ASSEMBLED):
                payload = self.assembler.assemble(classification, events, articles, confidence)

            stage = Stage.RESPONDED
            with self._stage(profiler, Stage.RESPONDED):
                if request.session_id:
                    self._store_context(request, classification)
        except Exception as exc:
            failure = exc if isinstance(exc, StageFailure) else StageFailure(stage, exc)
            if isinstance(failure.cause, ChatEngineError):
                self.logger.warning(f"Request failed at {failure.stage.value}: {failure.error_code}")
            else:
                self.logger.error(f"Unexpected error at {failure.stage.value}: {exc}", exc_info=True)
            self._end_latency_session(profiler, status=failure.status_code, error=failure.error_code)
            return ErrorResponse(
                error=failure.error_code,
                stage=failure.stage.value,
                detail=failure.detail,
                status_code=failure.status_code,
            )

        self._end_latency_session(
            profiler,
            status=200,
            type=payload.type.value,
            confidence=payload.confidence,
            low_confidence=payload.confidence < self.policy.low_confidence_threshold,
        )
        return payload

    async def search(self, query: str, limit: int = 24, category: Optional[str] = None) -> SearchResponse:
        """Stateless search across events and articles; raises ChatEngineError on store failures."""
        text = (query or "").strip()
        if not text:
            return SearchResponse(
                q="",
                confidence=EMPTY_SEARCH_CONFIDENCE,
                structured=SearchResults(intent="empty"),
            )

        profiler = self._start_latency_session("search")
        with self._stage(profiler, Stage.CLASSIFIED):
            classification = self.classifier.classify(text)
        with self._stage(profiler, Stage.EVIDENCE_FETCHED):
            events, articles = await self.fetch_evidence(classification, category=category)
        with self._stage(profiler, Stage.SCORED):
            match_count = self.primary_match_count(classification.type, events, articles)
            if classification.type == QueryType.UNKNOWN:
                match_count = len(events) + len(articles)
            confidence = self.scorer.score(classification, match_count)
        self._end_latency_session(profiler, status=200, type=classification.type.value, confidence=confidence)

        return SearchResponse(
            q=text,
            confidence=confidence,
            structured=SearchResults(
                intent=classification.type.value,
                events=events[:limit],
                articles=articles[:limit],
            ),
        )


def build_chat_handler(
    store: Optional[EvidenceStore] = None,
    policy: Optional[ChatPolicy] = None,
    cache: Optional[SessionContextCache] = None,
) -> ChatRequestHandler:
    """Wire a handler from the process-wide evidence store and the configured policy."""
    policy = policy or load_chat_policy(logger.getChild("Policy"))
    store = store or get_evidence_store()
    lexicon = CategoryLexicon.build(store.known_categories(), policy.extra_keywords)
    logger.info(f"Category lexicon ready with {len(lexicon)} categories (profile '{policy.name}')")

    scorer = ConfidenceScorer(policy)
    return ChatRequestHandler(
        classifier=QueryClassifier(lexicon, policy),
        store=store,
        scorer=scorer,
        assembler=ResponseAssembler(scorer, policy),
        cache=cache or SessionContextCache(policy.session_ttl_seconds, policy.session_max_entries),
        policy=policy,
    )

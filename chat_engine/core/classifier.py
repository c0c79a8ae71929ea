"""
Rule-based query classifier.

Topics come from a category lexicon; the intent shape comes from three cue
families (event, article, direct answer) whose strengths are compared with a
tie-break that prefers events.
"""
from typing import Dict, Iterable, Optional

from chat_engine.core.models import ClassificationResult, QueryType, SessionContext
from chat_engine.utils.chat_profiles import ChatPolicy
from chat_engine.utils.lexicon import CategoryLexicon
from chat_engine.utils.query_helpers import (
    count_article_cues,
    count_direct_cues,
    count_event_cues,
    cue_strength,
    has_anaphora,
    tokenize,
)

SIGNAL_EVENT = "event"
SIGNAL_ARTICLE = "article"
SIGNAL_DIRECT = "direct"
SIGNAL_TOPIC = "topic"
SIGNAL_CONTINUATION = "continuation"


class QueryClassifier:
    """Pure function of (query text, prior context, lexicon, policy)."""

    def __init__(self, lexicon: CategoryLexicon, policy: ChatPolicy):
        self.lexicon = lexicon
        self.policy = policy

    def classify(self, query, prior_context: Optional[SessionContext] = None) -> ClassificationResult:
        """
        Classify a query, merging topics from the prior context for short follow-ups.

        Args:
            query: Free text; anything that is not a string is treated as empty
            prior_context: Most recent context for the session, if any

        Returns:
            ClassificationResult; `unknown` with no topics when nothing in the lexicon matches
        """
        text = query if isinstance(query, str) else ""
        tokens = tokenize(text)

        topic_hits = self.lexicon.match(tokens)
        current_topics = set(topic_hits)
        category = self._primary_category(topic_hits)

        signals: Dict[str, float] = {
            SIGNAL_EVENT: cue_strength(count_event_cues(text, tokens)),
            SIGNAL_ARTICLE: cue_strength(count_article_cues(tokens)),
            SIGNAL_DIRECT: cue_strength(count_direct_cues(tokens)),
        }

        continuing = prior_context is not None and self.is_continuation(tokens)
        topics = current_topics
        prior_type = None
        if continuing:
            prior = prior_context.last_classification
            topics = self.merge_topics(current_topics, prior.topics)
            if not current_topics:
                category = prior.category
            prior_type = prior.type
            signals[SIGNAL_CONTINUATION] = 1.0

        signals[SIGNAL_TOPIC] = cue_strength(len(topics))

        if not topics:
            return ClassificationResult(
                type=QueryType.UNKNOWN,
                topics=(),
                category=None,
                signals=signals,
            )

        return ClassificationResult(
            type=self._resolve_type(signals, prior_type),
            topics=tuple(topics),
            category=category,
            signals=signals,
        )

    def is_continuation(self, tokens) -> bool:
        """Short texts and texts with anaphora markers lean on the previous query."""
        return len(tokens) < self.policy.continuation_token_threshold or has_anaphora(tokens)

    def merge_topics(self, current: Iterable[str], prior: Iterable[str]) -> set:
        """Union of current and prior topics; a current topic displaces prior topics of the same facet."""
        merged = set(current)
        covered_facets = {self.lexicon.facet_of(topic) for topic in merged}
        for topic in prior:
            if self.lexicon.facet_of(topic) not in covered_facets:
                merged.add(topic)
        return merged

    @staticmethod
    def _primary_category(topic_hits: Dict[str, int]) -> Optional[str]:
        if not topic_hits:
            return None
        # most hits first, alphabetical on ties
        return min(topic_hits, key=lambda category: (-topic_hits[category], category))

    def _resolve_type(self, signals: Dict[str, float], prior_type: Optional[QueryType]) -> QueryType:
        event = signals[SIGNAL_EVENT]
        article = signals[SIGNAL_ARTICLE]
        direct = signals[SIGNAL_DIRECT]
        info = max(article, direct)
        info_type = QueryType.DIRECT_ANSWER if direct > article else QueryType.ARTICLES

        if event > 0 and info > 0:
            if info - event >= self.policy.article_margin:
                return info_type
            return QueryType.EVENTS
        if event > 0:
            return QueryType.EVENTS
        if info > 0:
            return info_type

        if prior_type is not None and prior_type != QueryType.UNKNOWN:
            return prior_type
        return QueryType(self.policy.default_type)

import re
from typing import List, Optional, Sequence

from chat_engine.core.classifier import SIGNAL_CONTINUATION
from chat_engine.core.models import (
    Article,
    ClassificationResult,
    DebugInfo,
    Event,
    QueryType,
    ResponsePayload,
    StructuredContent,
)
from chat_engine.core.scorer import ConfidenceScorer
from chat_engine.utils.chat_profiles import ChatPolicy

SENTENCE_END_PATTERN = re.compile(r"[.!?](?=\s|$)")
HEADING_PATTERN = re.compile(r"^\s*#{1,6}\s+")


def _leading_paragraphs(body_markdown: str) -> str:
    """Body text with markdown headings removed and blank-line runs collapsed."""
    paragraphs = []
    for block in re.split(r"\n\s*\n", body_markdown or ""):
        block = block.strip()
        if not block or (HEADING_PATTERN.match(block) and "\n" not in block):
            continue
        paragraphs.append(" ".join(line.strip() for line in block.splitlines()))
    return "\n\n".join(paragraphs)


def trim_excerpt(text: str, limit: int) -> str:
    """Cut text to at most `limit` characters at a sentence end, else a word boundary."""
    if len(text) <= limit:
        return text
    window = text[:limit]
    sentence_ends = [match.end() for match in SENTENCE_END_PATTERN.finditer(window)]
    if sentence_ends and sentence_ends[-1] >= limit // 3:
        return window[: sentence_ends[-1]].rstrip()
    cut = window.rfind(" ")
    if cut > 0:
        window = window[:cut]
    return window.rstrip(" ,;:-") + "…"


class ResponseAssembler:
    """Builds the response payload whose primary channel matches the resolved type."""

    def __init__(self, scorer: ConfidenceScorer, policy: ChatPolicy):
        self.scorer = scorer
        self.policy = policy

    def build_direct_answer(self, article: Article) -> str:
        excerpt = trim_excerpt(_leading_paragraphs(article.body_markdown), self.policy.answer_excerpt_chars)
        if article.url:
            read_more = f"Read more: [{article.title}]({article.url})"
        else:
            read_more = f"Read more: {article.title}"
        parts = [f"**{article.title}**"]
        if excerpt:
            parts.append(excerpt)
        parts.append(read_more)
        return "\n\n".join(parts)

    def _fallback_answer(self) -> Optional[str]:
        return self.policy.fallback_answer or None

    def assemble(
        self,
        classification: ClassificationResult,
        matched_events: Sequence[Event],
        matched_articles: Sequence[Article],
        confidence: int,
    ) -> ResponsePayload:
        """
        Populate exactly one primary channel for the classification's type.

        A type with no supporting evidence is downgraded to unknown and rescored
        with zero matches; debugInfo keeps the original classification.
        """
        events: List[Event] = []
        articles: List[Article] = []
        answer_markdown: Optional[str] = None
        response_type = classification.type
        degraded_from: Optional[QueryType] = None

        if response_type == QueryType.EVENTS and matched_events:
            events = list(matched_events)
        elif response_type == QueryType.ARTICLES and matched_articles:
            articles = list(matched_articles)
        elif response_type == QueryType.DIRECT_ANSWER and matched_articles:
            answer_markdown = self.build_direct_answer(matched_articles[0])
        elif response_type != QueryType.UNKNOWN:
            degraded_from = response_type
            response_type = QueryType.UNKNOWN
            degraded = classification.model_copy(update={"type": QueryType.UNKNOWN})
            confidence = self.scorer.score(degraded, 0)

        if response_type == QueryType.UNKNOWN:
            answer_markdown = self._fallback_answer()

        return ResponsePayload(
            type=response_type,
            confidence=confidence,
            events=events,
            structured=StructuredContent(articles=articles),
            answer_markdown=answer_markdown,
            debug_info=DebugInfo(
                classification=classification,
                match_counts={"events": len(matched_events), "articles": len(matched_articles)},
                degraded_from=degraded_from,
                continuation=classification.signal(SIGNAL_CONTINUATION) > 0,
            ),
        )

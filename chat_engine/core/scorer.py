from chat_engine.core.classifier import SIGNAL_ARTICLE, SIGNAL_DIRECT, SIGNAL_EVENT, SIGNAL_TOPIC
from chat_engine.core.models import ClassificationResult, QueryType
from chat_engine.utils.chat_profiles import ChatPolicy

_INTENT_SIGNAL = {
    QueryType.EVENTS: SIGNAL_EVENT,
    QueryType.ARTICLES: SIGNAL_ARTICLE,
    QueryType.DIRECT_ANSWER: SIGNAL_DIRECT,
}


class ConfidenceScorer:
    """Deterministic 0-100 confidence from signal strength, specificity and evidence count."""

    def __init__(self, policy: ChatPolicy):
        self.policy = policy

    def intent_strength(self, classification: ClassificationResult) -> float:
        signal_name = _INTENT_SIGNAL.get(classification.type)
        if signal_name is None:
            return max(classification.signal(name) for name in _INTENT_SIGNAL.values())
        return classification.signal(signal_name)

    def base_score(self, classification: ClassificationResult) -> int:
        intent = self.intent_strength(classification)
        specificity = classification.signal(SIGNAL_TOPIC)
        return round(self.policy.base_score_max * (0.6 * intent + 0.4 * specificity))

    def match_boost(self, match_count: int) -> int:
        """Linear in the number of matches, saturating at the cap."""
        return min(self.policy.match_boost_cap, max(0, match_count) * self.policy.match_boost_per_record)

    def score(self, classification: ClassificationResult, match_count: int) -> int:
        total = max(0, min(100, self.base_score(classification) + self.match_boost(match_count)))
        if classification.type == QueryType.UNKNOWN:
            total = min(total, self.policy.unknown_confidence_cap)
        return int(total)

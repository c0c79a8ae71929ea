import re
from typing import Iterable, List, Sequence

TOKEN_PATTERN = re.compile(r"[a-z0-9]+")

# Scheduling and format words that point at bookable events
EVENT_CUE_WORDS = {
    "when", "next", "upcoming", "schedule", "scheduled", "dates", "date",
    "book", "booking", "available", "availability", "spaces", "places",
    "class", "classes", "course", "courses", "workshop", "workshops",
    "lesson", "lessons", "tuition", "event", "events", "session", "sessions",
}

MONTH_WORDS = {
    "jan", "january", "feb", "february", "mar", "march", "apr", "april", "may",
    "jun", "june", "jul", "july", "aug", "august", "sep", "sept", "september",
    "oct", "october", "nov", "november", "dec", "december",
}

WEEKDAY_WORDS = {
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
    "weekend", "weekends", "today", "tonight", "tomorrow",
}

RELATIVE_DATE_PATTERN = re.compile(r"\b(this|next)\s+(week|month|year|spring|summer|autumn|winter)\b")
NUMERIC_DATE_PATTERN = re.compile(r"\b\d{1,2}[/-]\d{1,2}(?:[/-]\d{2,4})?\b|\b20\d{2}\b")

# Informational phrases that point at articles
ARTICLE_CUE_PHRASES = [
    "what is",
    "what are",
    "whats",
    "what's",
    "how to",
    "how do",
    "how does",
    "how can",
    "guide",
    "guides",
    "tips",
    "explain",
    "tell me about",
    "why",
    "difference between",
    "tutorial",
    "article",
    "articles",
    "blog",
]

# Phrases asking for one short factual answer
DIRECT_CUE_PHRASES = [
    "define",
    "definition",
    "meaning of",
    "what does",
    "stand for",
]
YES_NO_OPENERS = {"do", "does", "can", "is", "are", "should", "will", "would", "could"}

ANAPHORA_MARKERS = [
    "it", "they", "them", "those", "these", "that", "this", "there",
    "what about", "how about",
]
# Conjunctions that only signal a follow-up when they open the query
LEADING_CONTINUATION_WORDS = {"and", "also", "plus"}

# Words that never identify a topic on their own
GENERIC_WORDS = {
    "photography", "photographic", "photo", "photos", "photograph", "photographs",
    "picture", "pictures", "camera", "near", "me", "uk",
}

STOP_WORDS = {
    "a", "an", "and", "are", "as", "at", "be", "by", "for", "from",
    "has", "he", "in", "is", "it", "its", "of", "on", "that", "the",
    "to", "was", "will", "with", "what", "when", "where", "who", "why",
    "how", "can", "could", "should", "would", "may", "might", "must",
    "this", "these", "those", "they", "them", "their", "there", "then",
    "if", "or", "but", "not", "no", "yes", "do", "does", "did", "done",
    "have", "had", "been", "being", "get", "got", "go", "went",
    "i", "you", "your", "my", "we", "our", "any", "some", "about", "me",
}


def tokenize(text) -> List[str]:
    """Lower-case alphanumeric tokens; anything that is not a string yields no tokens."""
    if not isinstance(text, str) or not text:
        return []
    return TOKEN_PATTERN.findall(text.lower())


def normalize_phrase(phrase: str) -> str:
    return " ".join(tokenize(phrase))


def padded(tokens: Sequence[str]) -> str:
    """Join tokens with surrounding spaces so phrases match on whole tokens only."""
    return f" {' '.join(tokens)} "


def count_phrase_hits(tokens: Sequence[str], phrases: Iterable[str]) -> int:
    haystack = padded(tokens)
    hits = 0
    for phrase in phrases:
        needle = normalize_phrase(phrase)
        if needle and f" {needle} " in haystack:
            hits += 1
    return hits


def count_date_references(text: str, tokens: Sequence[str]) -> int:
    lowered = text.lower() if isinstance(text, str) else ""
    hits = sum(1 for token in tokens if token in MONTH_WORDS or token in WEEKDAY_WORDS)
    hits += len(RELATIVE_DATE_PATTERN.findall(lowered))
    hits += len(NUMERIC_DATE_PATTERN.findall(lowered))
    return hits


def count_event_cues(text: str, tokens: Sequence[str]) -> int:
    return sum(1 for token in tokens if token in EVENT_CUE_WORDS) + count_date_references(text, tokens)


def count_article_cues(tokens: Sequence[str]) -> int:
    return count_phrase_hits(tokens, ARTICLE_CUE_PHRASES)


def count_direct_cues(tokens: Sequence[str]) -> int:
    hits = count_phrase_hits(tokens, DIRECT_CUE_PHRASES)
    if tokens and tokens[0] in YES_NO_OPENERS:
        hits += 1
    return hits


def has_anaphora(tokens: Sequence[str]) -> bool:
    if tokens and tokens[0] in LEADING_CONTINUATION_WORDS:
        return True
    return count_phrase_hits(tokens, ANAPHORA_MARKERS) > 0


def cue_strength(hits: int) -> float:
    """Saturating strength in [0, 1): one hit 0.5, two 0.75, three 0.875."""
    if hits <= 0:
        return 0.0
    return round(1.0 - 0.5 ** hits, 4)


from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from chat_engine.utils.query_helpers import (
    GENERIC_WORDS,
    STOP_WORDS,
    normalize_phrase,
    padded,
)

DEFAULT_FACET = "subject"


@dataclass(frozen=True)
class LexiconEntry:
    """Keyword phrases that identify one evidence category."""

    category: str
    facet: str
    phrases: Tuple[str, ...]


# category slug -> (facet, keyword phrases)
DEFAULT_CATEGORY_KEYWORDS: Dict[str, Tuple[str, List[str]]] = {
    # Level
    "beginners-courses": ("level", [
        "beginner", "beginners", "novice", "novices", "intro", "introduction",
        "foundation", "kickstart", "getting started", "starter", "new to",
    ]),
    "intermediate-courses": ("level", ["intermediate", "improver", "improvers"]),
    "advanced-courses": ("level", ["advanced", "masterclass", "expert", "experienced"]),
    # Format
    "photography-courses": ("format", ["class", "classes", "course", "courses", "lesson", "lessons", "tuition"]),
    "photography-workshops": ("format", ["workshop", "workshops", "photo walk", "photo walks", "field trip"]),
    "online-courses": ("format", ["online", "zoom", "remote", "virtual"]),
    "private-lessons": ("format", ["private lesson", "private lessons", "one to one", "1 to 1", "1 2 1", "mentoring"]),
    # Subject
    "landscape": ("subject", ["landscape", "landscapes", "seascape", "seascapes", "scenery"]),
    "long-exposure": ("subject", ["long exposure", "long exposures", "nd filter", "nd filters", "slow shutter"]),
    "portrait": ("subject", ["portrait", "portraits", "headshot", "headshots"]),
    "hdr-photography": ("subject", ["hdr", "high dynamic range", "bracketing", "exposure bracketing"]),
    "camera-settings": ("subject", [
        "aperture", "shutter speed", "iso", "exposure triangle", "depth of field",
        "manual mode", "metering", "white balance",
    ]),
    "composition": ("subject", ["composition", "compose", "rule of thirds", "leading lines"]),
    "wildlife": ("subject", ["wildlife", "bird", "birds", "animals"]),
    "macro": ("subject", ["macro", "close up", "close ups"]),
    "night-photography": ("subject", ["night", "astro", "astrophotography", "milky way", "stars"]),
    "woodland": ("subject", ["woodland", "woods", "forest", "bluebell", "bluebells", "autumn colours"]),
    "equipment": ("subject", ["tripod", "tripods", "lens", "lenses", "filters", "gear", "equipment", "camera bag"]),
    # Software
    "lightroom": ("software", ["lightroom", "editing", "post processing", "raw processing"]),
    "photoshop": ("software", ["photoshop", "layers", "masking"]),
    # Location
    "coventry": ("location", ["coventry", "warwickshire", "kenilworth", "warwick", "leamington", "balsall common"]),
    "yorkshire-dales": ("location", ["yorkshire", "yorkshire dales", "malham"]),
    "devon": ("location", ["devon", "north devon", "hartland quay", "exmoor", "lynmouth"]),
    "wales": ("location", ["wales", "snowdonia", "betws y coed", "anglesey"]),
    "lake-district": ("location", ["lake district", "cumbria", "derwentwater"]),
    # Duration
    "1-day": ("duration", ["one day", "1 day", "full day", "all day"]),
    "2.5hrs-4hrs": ("duration", ["half day", "2 5 hours", "few hours", "evening session"]),
    "multi-day": ("duration", ["multi day", "residential", "two day", "2 day", "three day", "3 day"]),
}


def _is_generic(phrase: str) -> bool:
    tokens = phrase.split()
    return not tokens or all(token in GENERIC_WORDS or token in STOP_WORDS for token in tokens)


def _store_category_phrases(category: str) -> List[str]:
    """Phrases for a category only the store knows about: the slug itself, minus generic words."""
    full = normalize_phrase(category)
    phrases = [full]
    distinctive = " ".join(
        token for token in full.split() if token not in GENERIC_WORDS and token not in STOP_WORDS
    )
    if distinctive and distinctive != full:
        phrases.append(distinctive)
    return [phrase for phrase in phrases if not _is_generic(phrase)]


class CategoryLexicon:
    """Read-only phrase -> category index used for topic extraction."""

    def __init__(self, entries: Iterable[LexiconEntry]):
        self._entries: Dict[str, LexiconEntry] = {}
        self._phrase_index: Dict[str, Set[str]] = {}
        for entry in entries:
            self._entries[entry.category] = entry
            for phrase in entry.phrases:
                self._phrase_index.setdefault(phrase, set()).add(entry.category)

    @classmethod
    def build(
        cls,
        known_categories: Iterable[str] = (),
        extra_keywords: Optional[Mapping[str, Sequence[str]]] = None,
    ) -> "CategoryLexicon":
        """Combine the built-in lexicon with store categories and profile extras."""
        phrases_by_category: Dict[str, List[str]] = {}
        facets: Dict[str, str] = {}

        for category, (facet, phrases) in DEFAULT_CATEGORY_KEYWORDS.items():
            facets[category] = facet
            phrases_by_category[category] = [normalize_phrase(category)] + [normalize_phrase(p) for p in phrases]

        for raw_category in known_categories:
            category = str(raw_category).strip().lower()
            if not category or category in phrases_by_category:
                continue
            facets[category] = DEFAULT_FACET
            phrases_by_category[category] = _store_category_phrases(category)

        for raw_category, phrases in (extra_keywords or {}).items():
            category = str(raw_category).strip().lower()
            if not category:
                continue
            facets.setdefault(category, DEFAULT_FACET)
            phrases_by_category.setdefault(category, []).extend(normalize_phrase(p) for p in phrases)

        entries = []
        for category, phrases in phrases_by_category.items():
            unique = tuple(dict.fromkeys(p for p in phrases if p and not _is_generic(p)))
            if unique:
                entries.append(LexiconEntry(category=category, facet=facets[category], phrases=unique))
        return cls(entries)

    @property
    def categories(self) -> List[str]:
        return sorted(self._entries)

    def facet_of(self, category: str) -> str:
        entry = self._entries.get(category)
        return entry.facet if entry else DEFAULT_FACET

    def match(self, tokens: Sequence[str]) -> Dict[str, int]:
        """Return category -> number of distinct phrases found in the token sequence."""
        if not tokens:
            return {}
        haystack = padded(tokens)
        hits: Dict[str, int] = {}
        for phrase, categories in self._phrase_index.items():
            if f" {phrase} " in haystack:
                for category in categories:
                    hits[category] = hits.get(category, 0) + 1
        return hits

    def __len__(self) -> int:
        return len(self._entries)

import datetime as dt
import json

import pytest

from chat_engine.core.assembler import ResponseAssembler
from chat_engine.core.chat_handler import ChatRequestHandler
from chat_engine.core.classifier import QueryClassifier
from chat_engine.core.models import Article, Event
from chat_engine.core.scorer import ConfidenceScorer
from chat_engine.infra.evidence_store import EvidenceStore, InMemoryEvidenceBackend
from chat_engine.infra.session_cache import SessionContextCache
from chat_engine.utils.chat_profiles import get_chat_policy
from chat_engine.utils.lexicon import CategoryLexicon

TODAY = dt.date(2030, 1, 1)

EVENTS = [
    Event(
        id="e1",
        title="Beginners Course March",
        categories=["beginners-courses", "photography-courses"],
        date=dt.date(2030, 3, 2),
        description="Three evening classes.",
    ),
    Event(
        id="e2",
        title="Beginners Course February",
        categories=["beginners-courses", "photography-courses"],
        date=dt.date(2030, 2, 1),
        description="Three evening classes.",
    ),
    Event(
        id="e3",
        title="Lightroom for Beginners",
        categories=["beginners-courses", "lightroom"],
        date=dt.date(2030, 1, 15),
    ),
    Event(
        id="e4",
        title="Past Beginners Course",
        categories=["beginners-courses", "photography-courses"],
        date=dt.date(2029, 6, 1),
    ),
    Event(
        id="e5",
        title="Private Lessons",
        categories=["private-lessons", "photography-courses"],
    ),
    Event(
        id="e6",
        title="Devon Long Exposure Workshop",
        categories=["photography-workshops", "long-exposure", "devon"],
        date=dt.date(2030, 6, 14),
    ),
    Event(
        id="e7",
        title="Advanced Dales Course",
        categories=["advanced-courses", "photography-courses"],
        date=dt.date(2030, 9, 20),
    ),
]

ARTICLES = [
    Article(
        id="a1",
        title="What is HDR Photography?",
        categories=["hdr-photography", "camera-settings"],
        body_markdown=(
            "# What is HDR Photography?\n\n"
            "HDR combines several exposures of one scene. Highlights and shadows both keep detail.\n\n"
            "Use a tripod and exposure bracketing."
        ),
        url="https://example.com/blog/what-is-hdr",
    ),
    Article(
        id="a2",
        title="HDR Bracketing Tips",
        categories=["hdr-photography", "landscape"],
        body_markdown="Bracket in two stop increments. Keep ISO low.",
    ),
    Article(
        id="a3",
        title="Exposure Triangle Explained",
        categories=["camera-settings", "beginners-courses"],
        body_markdown="Aperture, shutter speed and ISO work together.",
    ),
    Article(
        id="a4",
        title="Long Exposure Guide",
        categories=["long-exposure", "landscape"],
        body_markdown="Slow shutter speeds blur moving water.",
    ),
]


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FailingBackend:
    name = "failing"

    def fetch_events(self, topics):
        raise ConnectionError("store offline")

    def fetch_articles(self, topics):
        raise ConnectionError("store offline")

    def known_categories(self):
        return []

    def ping(self):
        return False


@pytest.fixture(autouse=True)
def _quiet_env(monkeypatch):
    monkeypatch.setenv("CHAT_LATENCY_LOG", "")
    for name in (
        "CHAT_PROFILE_NAME",
        "CHAT_PROFILE_PATH",
        "CHAT_LOW_CONFIDENCE_THRESHOLD",
        "CHAT_UNKNOWN_CONFIDENCE_CAP",
        "CHAT_EVIDENCE_TIMEOUT_MS",
        "CHAT_SESSION_TTL_SECONDS",
        "CHAT_DEGRADE_ON_TIMEOUT",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def policy():
    return get_chat_policy("default")


@pytest.fixture
def backend():
    return InMemoryEvidenceBackend(EVENTS, ARTICLES)


@pytest.fixture
def store(backend, policy):
    return EvidenceStore(backend, policy, today=lambda: TODAY)


@pytest.fixture
def lexicon(backend):
    return CategoryLexicon.build(backend.known_categories())


@pytest.fixture
def classifier(lexicon, policy):
    return QueryClassifier(lexicon, policy)


@pytest.fixture
def scorer(policy):
    return ConfidenceScorer(policy)


@pytest.fixture
def assembler(scorer, policy):
    return ResponseAssembler(scorer, policy)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock, policy):
    return SessionContextCache(policy.session_ttl_seconds, 100, clock=clock)


@pytest.fixture
def make_handler(lexicon, cache):
    """Build a handler around any backend/policy pair."""

    def _make(backend=None, policy=None, session_cache=None):
        policy = policy or get_chat_policy("default")
        store = EvidenceStore(backend or InMemoryEvidenceBackend(EVENTS, ARTICLES), policy, today=lambda: TODAY)
        scorer = ConfidenceScorer(policy)
        return ChatRequestHandler(
            classifier=QueryClassifier(lexicon, policy),
            store=store,
            scorer=scorer,
            assembler=ResponseAssembler(scorer, policy),
            cache=session_cache if session_cache is not None else cache,
            policy=policy,
        )

    return _make


@pytest.fixture
def handler(make_handler):
    return make_handler()


@pytest.fixture
def evidence_file(tmp_path):
    path = tmp_path / "evidence.json"
    path.write_text(
        json.dumps(
            {
                "events": [event.model_dump(mode="json") for event in EVENTS],
                "articles": [article.model_dump(mode="json") for article in ARTICLES],
            }
        ),
        encoding="utf-8",
    )
    return path

import pytest

from chat_engine.core.classifier import (
    SIGNAL_ARTICLE,
    SIGNAL_CONTINUATION,
    SIGNAL_DIRECT,
    SIGNAL_EVENT,
    SIGNAL_TOPIC,
)
from chat_engine.core.models import QueryType, SessionContext
from chat_engine.utils.lexicon import CategoryLexicon


def _context(classifier, query):
    return SessionContext(
        session_id="s1",
        last_query=query,
        last_classification=classifier.classify(query),
        updated_at=0.0,
    )


def test_event_cues_resolve_to_events(classifier):
    result = classifier.classify("beginner photography classes")

    assert result.type == QueryType.EVENTS
    assert set(result.topics) == {"beginners-courses", "photography-courses"}
    assert result.signal(SIGNAL_EVENT) > 0
    assert SIGNAL_CONTINUATION not in result.signals


@pytest.mark.parametrize(
    "query",
    [
        "when is the next landscape workshop",
        "any portrait sessions in March?",
        "devon trip 14/06",
    ],
)
def test_scheduling_and_date_words_pick_events(classifier, query):
    assert classifier.classify(query).type == QueryType.EVENTS


def test_informational_question_resolves_to_articles(classifier):
    result = classifier.classify("What is HDR photography?")

    assert result.type == QueryType.ARTICLES
    assert result.topics == ("hdr-photography",)
    assert result.category == "hdr-photography"
    assert result.signal(SIGNAL_ARTICLE) == 0.5


def test_definition_question_resolves_to_direct_answer(classifier):
    result = classifier.classify("what does hdr stand for")

    assert result.type == QueryType.DIRECT_ANSWER
    assert result.signal(SIGNAL_DIRECT) > result.signal(SIGNAL_ARTICLE)


def test_events_win_ties_until_information_clears_the_margin(classifier):
    close_call = classifier.classify("how to book a landscape workshop")
    assert close_call.type == QueryType.EVENTS

    clear_info = classifier.classify("what is a long exposure workshop guide")
    assert clear_info.signal(SIGNAL_ARTICLE) - clear_info.signal(SIGNAL_EVENT) >= 0.25
    assert clear_info.type == QueryType.ARTICLES


def test_topics_without_cues_use_default_type(classifier, policy):
    result = classifier.classify("landscape devon tripod")
    assert result.type == QueryType(policy.default_type)


@pytest.mark.parametrize("query", ["ping", "", "   ", "hello there", "photography"])
def test_no_lexicon_match_is_unknown(classifier, query):
    result = classifier.classify(query)

    assert result.type == QueryType.UNKNOWN
    assert result.topics == ()
    assert result.category is None


def test_non_string_input_is_unknown(classifier):
    assert classifier.classify(None).type == QueryType.UNKNOWN
    assert classifier.classify(42).type == QueryType.UNKNOWN


def test_classification_is_idempotent(classifier):
    prior = _context(classifier, "beginner photography classes")
    for query in ("beginner photography classes", "what about in devon?", "ping"):
        assert classifier.classify(query) == classifier.classify(query)
        assert classifier.classify(query, prior) == classifier.classify(query, prior)


def test_short_follow_up_merges_prior_topics(classifier):
    prior = _context(classifier, "beginner photography classes")
    result = classifier.classify("what about in devon?", prior)

    assert set(prior.last_classification.topics) <= set(result.topics)
    assert "devon" in result.topics
    assert result.type == QueryType.EVENTS
    assert result.signal(SIGNAL_CONTINUATION) == 1.0


def test_follow_up_without_topics_inherits_prior_category(classifier):
    prior = _context(classifier, "What is HDR photography?")
    result = classifier.classify("and why?", prior)

    assert result.topics == prior.last_classification.topics
    assert result.category == prior.last_classification.category


def test_current_topic_displaces_prior_topic_of_same_facet(classifier):
    prior = _context(classifier, "beginner photography classes")
    result = classifier.classify("advanced ones?", prior)

    assert "advanced-courses" in result.topics
    assert "beginners-courses" not in result.topics
    assert "photography-courses" in result.topics


def test_long_self_contained_query_ignores_prior(classifier):
    prior = _context(classifier, "beginner photography classes")
    result = classifier.classify("what is long exposure photography with nd filters", prior)

    assert SIGNAL_CONTINUATION not in result.signals
    assert "beginners-courses" not in result.topics


@pytest.mark.parametrize(
    "prior_query, query, expected_topics",
    [
        (
            "wildlife photography workshops",
            "Lightroom and Photoshop courses for beginners in Coventry",
            {"lightroom", "photoshop", "photography-courses", "beginners-courses", "coventry"},
        ),
        (
            "portrait classes for beginners",
            "one day landscape workshop in devon next month",
            {"1-day", "landscape", "photography-workshops", "devon"},
        ),
    ],
)
def test_conjunctions_and_numerals_inside_long_query_do_not_continue(classifier, prior_query, query, expected_topics):
    result = classifier.classify(query, _context(classifier, prior_query))

    assert SIGNAL_CONTINUATION not in result.signals
    assert set(result.topics) == expected_topics


def test_leading_conjunction_continues_long_query(classifier):
    prior = _context(classifier, "beginner photography classes")
    result = classifier.classify("and also anything in the lake district", prior)

    assert result.signal(SIGNAL_CONTINUATION) == 1.0
    assert {"beginners-courses", "photography-courses", "lake-district"} <= set(result.topics)


def test_unknown_prior_does_not_set_type(classifier, policy):
    prior = _context(classifier, "ping")
    result = classifier.classify("devon", prior)
    assert result.type == QueryType(policy.default_type)


def test_topic_signal_grows_with_topic_count(classifier):
    one = classifier.classify("landscape")
    two = classifier.classify("landscape devon")
    assert 0 < one.signal(SIGNAL_TOPIC) < two.signal(SIGNAL_TOPIC) < 1


def test_lexicon_learns_store_only_categories():
    lexicon = CategoryLexicon.build(["street-photography", "photography"])

    assert "street-photography" in lexicon.categories
    assert "photography" not in lexicon.categories
    assert lexicon.facet_of("street-photography") == "subject"
    assert lexicon.match(["street", "photos"]) == {"street-photography": 1}


def test_lexicon_extra_keywords_extend_categories():
    lexicon = CategoryLexicon.build([], {"macro": ["bugs"], "drone": ["drone", "aerial"]})

    assert lexicon.match(["bugs"]) == {"macro": 1}
    assert lexicon.match(["aerial", "drone"]) == {"drone": 2}
    assert lexicon.facet_of("macro") == "subject"

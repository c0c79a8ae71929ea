import json

import pytest

from chat_engine.infra.metrics import build_latency_record, record_latency_metric
from chat_engine.utils.chat_profiles import (
    BUILT_IN_PROFILES,
    ChatPolicy,
    get_chat_policy,
    list_available_profiles,
    load_chat_policy,
)
from chat_engine.utils.query_helpers import cue_strength, tokenize


def test_unknown_profile_falls_back_to_default():
    assert get_chat_policy("nope") == BUILT_IN_PROFILES["default"]
    assert get_chat_policy(None).name == "default"
    assert get_chat_policy(" Conservative ").name == "conservative"


def test_profiles_load_from_json(tmp_path):
    path = tmp_path / "profiles.json"
    path.write_text(
        json.dumps({"profiles": {"Strict": {"low_confidence_threshold": 60, "unknown_cap_typo": 1, "max_events": 3}}}),
        encoding="utf-8",
    )

    policy = get_chat_policy("strict", str(path))
    assert policy.low_confidence_threshold == 60
    assert policy.max_events == 3
    assert "strict" in list_available_profiles(str(path))


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("CHAT_PROFILE_NAME", "conservative")
    monkeypatch.setenv("CHAT_EVIDENCE_TIMEOUT_MS", "750")
    monkeypatch.setenv("CHAT_SESSION_TTL_SECONDS", "60")
    monkeypatch.setenv("CHAT_DEGRADE_ON_TIMEOUT", "yes")

    policy = load_chat_policy()
    assert policy.name == "conservative"
    assert policy.evidence_timeout_seconds == 0.75
    assert policy.session_ttl_seconds == 60.0
    assert policy.degrade_on_timeout is True


def test_low_threshold_override_pulls_unknown_cap_down(monkeypatch):
    monkeypatch.setenv("CHAT_LOW_CONFIDENCE_THRESHOLD", "20")

    policy = load_chat_policy()
    assert policy.low_confidence_threshold == 20
    assert policy.unknown_confidence_cap == 19


def test_high_threshold_override_keeps_profile_cap(monkeypatch):
    monkeypatch.setenv("CHAT_LOW_CONFIDENCE_THRESHOLD", "55")

    policy = load_chat_policy()
    assert policy.low_confidence_threshold == 55
    assert policy.unknown_confidence_cap == BUILT_IN_PROFILES["default"].unknown_confidence_cap


def test_unknown_cap_override(monkeypatch):
    monkeypatch.setenv("CHAT_LOW_CONFIDENCE_THRESHOLD", "30")
    monkeypatch.setenv("CHAT_UNKNOWN_CONFIDENCE_CAP", "10")

    policy = load_chat_policy()
    assert (policy.low_confidence_threshold, policy.unknown_confidence_cap) == (30, 10)


@pytest.mark.parametrize(
    "overrides",
    [
        {"unknown_confidence_cap": 45},
        {"base_score_max": 70},
        {"default_type": "unknown"},
        {"low_confidence_threshold": 120},
    ],
)
def test_policy_validation(overrides):
    with pytest.raises(ValueError):
        ChatPolicy(name="bad", description="", **overrides)


def test_latency_metric_written_as_json_lines(monkeypatch, tmp_path):
    path = tmp_path / "metrics" / "latency.jsonl"
    monkeypatch.setenv("CHAT_LATENCY_LOG", str(path))

    record_latency_metric("chat", [("received", 0.001), ("classified", 0.002)], 0.004, extra={"status": 200})

    record = json.loads(path.read_text(encoding="utf-8").strip())
    assert record["request"] == "chat"
    assert record["stage_ms"] == {"received": 1.0, "classified": 2.0}
    assert record["outcome"] == {"status": 200}


def test_latency_record_names_slowest_and_last_stage():
    stages = [("received", 0.001), ("classified", 0.002), ("evidence-fetched", 0.250)]

    record = build_latency_record("chat", stages, 0.260, {"status": 504, "error": "EVIDENCE_TIMEOUT"})

    assert list(record["stage_ms"]) == ["received", "classified", "evidence-fetched"]
    assert record["slowest_stage"] == "evidence-fetched"
    assert record["last_stage"] == "evidence-fetched"
    assert record["unprofiled_ms"] == pytest.approx(7.0)
    assert record["outcome"]["error"] == "EVIDENCE_TIMEOUT"


def test_latency_record_without_stages():
    record = build_latency_record("search", [], 0.0)

    assert record["slowest_stage"] is None
    assert record["last_stage"] is None
    assert record["outcome"] == {}


def test_latency_metric_disabled_by_empty_path(tmp_path):
    record_latency_metric("chat", [], 0.0)
    assert not list(tmp_path.iterdir())


def test_query_helpers():
    assert tokenize("What's HDR, really?") == ["what", "s", "hdr", "really"]
    assert tokenize(None) == []
    assert cue_strength(0) == 0.0
    assert cue_strength(1) == 0.5
    assert cue_strength(3) == 0.875

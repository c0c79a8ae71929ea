import json
import os
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, List, Optional

DEFAULT_PROFILE_NAME = "default"

DEFAULT_FALLBACK_ANSWER = (
    "I'd be happy to help with that! Could you be more specific about what you're looking for? "
    "For example, are you asking about:\n\n"
    "- Workshop or course dates and locations?\n"
    "- A photography technique or editing question?\n"
    "- Equipment advice?\n\n"
    "Please let me know which area interests you most."
)


@dataclass(frozen=True)
class ChatPolicy:
    """Tunable thresholds for classification, scoring, retrieval and session handling."""

    name: str
    description: str
    low_confidence_threshold: int = 40
    unknown_confidence_cap: int = 25
    base_score_max: int = 60
    match_boost_per_record: int = 10
    match_boost_cap: int = 40
    article_margin: float = 0.25
    continuation_token_threshold: int = 4
    default_type: str = "articles"
    session_ttl_seconds: float = 1800.0
    session_max_entries: int = 10000
    evidence_timeout_seconds: float = 0.3
    degrade_on_timeout: bool = False
    max_events: int = 12
    max_articles: int = 6
    future_events_only: bool = True
    answer_excerpt_chars: int = 600
    fallback_answer: str = DEFAULT_FALLBACK_ANSWER
    # category slug -> extra keyword phrases
    extra_keywords: Dict[str, List[str]] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not 0 <= self.low_confidence_threshold <= 100:
            raise ValueError("low_confidence_threshold must be within 0..100")
        if self.unknown_confidence_cap >= self.low_confidence_threshold:
            raise ValueError("unknown_confidence_cap must be below low_confidence_threshold")
        if self.base_score_max + self.match_boost_cap > 100:
            raise ValueError("base_score_max + match_boost_cap must not exceed 100")
        if self.default_type not in ("events", "articles", "direct-answer"):
            raise ValueError(f"Unsupported default_type '{self.default_type}'")


BUILT_IN_PROFILES: Dict[str, ChatPolicy] = {
    DEFAULT_PROFILE_NAME: ChatPolicy(
        name=DEFAULT_PROFILE_NAME,
        description="Balanced profile for the public chat widget.",
    ),
    "conservative": ChatPolicy(
        name="conservative",
        description="Demands stronger evidence before reporting high confidence.",
        low_confidence_threshold=50,
        unknown_confidence_cap=30,
        base_score_max=50,
        match_boost_per_record=8,
        match_boost_cap=40,
        article_margin=0.15,
        max_events=8,
        max_articles=4,
        metadata={"audience": "calibration"},
    ),
}

_POLICY_FIELDS = {f.name for f in fields(ChatPolicy)}


def _normalize_name(name: Optional[str]) -> str:
    return (name or "").strip().lower()


def _load_profiles_from_path(path: Optional[str]) -> Dict[str, ChatPolicy]:
    if not path:
        return {}

    resolved_path = os.path.abspath(path)
    if not os.path.exists(resolved_path):
        return {}

    with open(resolved_path, "r", encoding="utf-8") as handle:
        data = json.load(handle)

    profiles_data = data.get("profiles", {}) if isinstance(data, dict) else {}
    loaded_profiles: Dict[str, ChatPolicy] = {}

    for raw_name, payload in profiles_data.items():
        if not isinstance(payload, dict):
            continue
        name = _normalize_name(raw_name)
        if not name:
            continue
        settings = {key: value for key, value in payload.items() if key in _POLICY_FIELDS and key != "name"}
        settings.setdefault("description", "")
        loaded_profiles[name] = ChatPolicy(name=name, **settings)

    return loaded_profiles


def get_chat_policy(
    requested_name: Optional[str],
    profile_path: Optional[str] = None,
    logger: Optional[Any] = None,
) -> ChatPolicy:
    """Return a policy from built-in defaults and optional JSON overrides."""
    normalized_name = _normalize_name(requested_name) or DEFAULT_PROFILE_NAME

    registry = dict(BUILT_IN_PROFILES)
    registry.update(_load_profiles_from_path(profile_path))

    policy = registry.get(normalized_name)
    if policy:
        return policy

    if logger:
        logger.warning(
            "Chat profile '%s' not found; falling back to '%s'",
            normalized_name,
            DEFAULT_PROFILE_NAME,
        )
    return registry[DEFAULT_PROFILE_NAME]


def _env_flag(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes", "y")


def apply_env_overrides(policy: ChatPolicy) -> ChatPolicy:
    """Apply the handful of per-deployment environment overrides on top of a profile."""
    overrides: Dict[str, Any] = {}
    if value := os.getenv("CHAT_LOW_CONFIDENCE_THRESHOLD"):
        threshold = int(value)
        overrides["low_confidence_threshold"] = threshold
        # unknown answers must stay below the threshold
        overrides["unknown_confidence_cap"] = max(0, min(policy.unknown_confidence_cap, threshold - 1))
    if value := os.getenv("CHAT_UNKNOWN_CONFIDENCE_CAP"):
        overrides["unknown_confidence_cap"] = int(value)
    if value := os.getenv("CHAT_EVIDENCE_TIMEOUT_MS"):
        overrides["evidence_timeout_seconds"] = float(value) / 1000.0
    if value := os.getenv("CHAT_SESSION_TTL_SECONDS"):
        overrides["session_ttl_seconds"] = float(value)
    if value := os.getenv("CHAT_DEGRADE_ON_TIMEOUT"):
        overrides["degrade_on_timeout"] = _env_flag(value)
    return replace(policy, **overrides) if overrides else policy


def load_chat_policy(logger: Optional[Any] = None) -> ChatPolicy:
    """Resolve the active policy from CHAT_PROFILE_NAME / CHAT_PROFILE_PATH and env overrides."""
    policy = get_chat_policy(
        os.getenv("CHAT_PROFILE_NAME", DEFAULT_PROFILE_NAME),
        os.getenv("CHAT_PROFILE_PATH"),
        logger,
    )
    return apply_env_overrides(policy)


def list_available_profiles(profile_path: Optional[str] = None) -> List[str]:
    """Return all available profile names."""
    combined = {**BUILT_IN_PROFILES, **_load_profiles_from_path(profile_path)}
    return sorted(combined.keys())

import json
import os
import time
from pathlib import Path
from typing import Dict, Optional, Sequence, Tuple

from chat_engine.infra.logger import logger

DEFAULT_LATENCY_LOG = "logs/chat_latency.jsonl"


def _latency_log_path() -> Optional[Path]:
    """Per-request latency file, or None when CHAT_LATENCY_LOG is set to an empty value."""
    configured = os.getenv("CHAT_LATENCY_LOG", DEFAULT_LATENCY_LOG).strip()
    if not configured:
        return None
    path = Path(configured)
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def build_latency_record(
    request_kind: str,
    stages: Sequence[Tuple[str, float]],
    total_seconds: float,
    outcome: Optional[Dict[str, object]] = None,
) -> Dict[str, object]:
    """
    Shape one request's lifecycle timings.

    `stage_ms` keeps lifecycle order; `unprofiled_ms` is time spent between stages
    (routing, serialization) and `slowest_stage` names where the request spent most.
    Stages the request never reached are simply absent.
    """
    stage_ms = {name: round(duration * 1000, 3) for name, duration in stages}
    total_ms = round(total_seconds * 1000, 3)
    return {
        "at": round(time.time(), 3),
        "request": request_kind,
        "total_ms": total_ms,
        "stage_ms": stage_ms,
        "unprofiled_ms": round(max(0.0, total_ms - sum(stage_ms.values())), 3),
        "slowest_stage": max(stage_ms, key=stage_ms.get) if stage_ms else None,
        "last_stage": next(reversed(stage_ms), None),
        "outcome": dict(outcome or {}),
    }


def record_latency_metric(
    request_kind: str,
    stages: Sequence[Tuple[str, float]],
    total_seconds: float,
    extra: Optional[Dict[str, object]] = None,
) -> None:
    """Append the request's latency record as JSON Lines. Never raises."""
    try:
        path = _latency_log_path()
        if path is None:
            return
        record = build_latency_record(request_kind, stages, total_seconds, extra)
        with path.open("a", encoding="utf-8") as fp:
            fp.write(json.dumps(record))
            fp.write("\n")
    except Exception as exc:
        logger.getChild("Metrics").warning("Failed to record %s latency: %s", request_kind, exc)

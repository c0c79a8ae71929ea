"""
Infrastructure package initializer.

To avoid circular imports, import directly from submodules, for example:

    from chat_engine.infra.logger import logger
    from chat_engine.infra.metrics import record_latency_metric
    from chat_engine.infra.evidence_store import get_evidence_store
    from chat_engine.infra.session_cache import SessionContextCache
"""

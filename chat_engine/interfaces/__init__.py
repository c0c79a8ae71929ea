"""
User-facing interfaces for the Workshop Chat Engine.

This package groups the HTTP API (FastAPI) under chat_engine.interfaces.api.
"""

from . import api  # noqa: F401

__all__ = ["api"]

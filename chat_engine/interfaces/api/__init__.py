"""
API interfaces for the Workshop Chat Engine.

Example:
    from chat_engine.interfaces.api import app
"""

from chat_engine.interfaces.api.api import app  # FastAPI application instance

__all__ = ["app"]

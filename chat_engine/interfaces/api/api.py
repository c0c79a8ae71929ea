### api.py

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from datetime import datetime
import json
import os
import time
import uvicorn

from pydantic import ValidationError

from chat_engine.core import ChatEngineError, ErrorResponse, SearchRequest
from chat_engine.core.chat_handler import build_chat_handler
from chat_engine.infra.logger import logger
from chat_engine.utils.chat_profiles import list_available_profiles

api_logger = logger.getChild("API")


@asynccontextmanager ## Build the handler (and the evidence store behind it) once, before the first request
async def lifespan(app: FastAPI):
    api_logger.info("Starting application...")
    init_start = time.perf_counter()
    app.state.chat_handler = build_chat_handler()
    api_logger.success("Chat handler initialized in %.3fs", time.perf_counter() - init_start)
    api_logger.info("Active chat profile: %s (available: %s)", app.state.chat_handler.policy.name,
                    ", ".join(list_available_profiles(os.getenv("CHAT_PROFILE_PATH"))))
    app.state.startup_time = datetime.utcnow()
    yield
    app.state.chat_handler.cache.clear()
    api_logger.info("Application stopped")


app = FastAPI(title="Workshop Chat Engine API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()],
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(error: ErrorResponse) -> JSONResponse:
    return JSONResponse(status_code=error.status_code, content=error.to_json())


async def _read_json_object(request: Request):
    """Decoded body when it is a JSON object, otherwise None."""
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    return body if isinstance(body, dict) else None


@app.get("/health")
async def health_check():
    """Health check endpoint for Docker and load balancers"""
    handler = getattr(app.state, "chat_handler", None)
    if handler is None:
        return JSONResponse(status_code=503, content={"status": "unavailable", "detail": "Handler not initialized"})

    reachable = handler.store.is_reachable()
    handler.cache.purge_expired()
    return JSONResponse(
        status_code=200 if reachable else 503,
        content={
            "status": "healthy" if reachable else "degraded",
            "uptime": str(datetime.utcnow() - app.state.startup_time),
            "services": {
                "evidence_store": {"reachable": reachable, "backend": handler.store.backend_name},
                "session_cache": {"entries": len(handler.cache)},
            },
            "profile": handler.policy.name,
        },
    )


@app.post("/api/chat")
async def chat(request: Request):
    request_started = time.perf_counter()
    body = await _read_json_object(request)
    if body is None:
        api_logger.warning("Rejected chat request with a non-JSON body")
        return _error_response(ErrorResponse(error="invalid_json", status_code=400))

    query = body.get("query")
    api_logger.info("Chat request received; query_length=%d", len(query) if isinstance(query, str) else 0)
    try:
        result = await app.state.chat_handler.handle(body)
    except Exception as e:
        api_logger.error("API error after %.3fs: %s", time.perf_counter() - request_started, str(e), exc_info=True)
        return _error_response(ErrorResponse(error="internal_error", detail=str(e), status_code=500))

    elapsed = time.perf_counter() - request_started
    if isinstance(result, ErrorResponse):
        api_logger.info("Chat request failed in %.3fs; error=%s", elapsed, result.error)
        return _error_response(result)
    api_logger.info("Chat request completed in %.3fs; type=%s confidence=%d", elapsed, result.type.value, result.confidence)
    return JSONResponse(status_code=200, content=result.to_json())


@app.post("/api/search")
async def search(request: Request):
    body = await _read_json_object(request)
    if body is None:
        return _error_response(ErrorResponse(error="invalid_json", status_code=400))
    try:
        search_request = SearchRequest.model_validate(body)
    except ValidationError as e:
        first = e.errors()[0]
        return _error_response(ErrorResponse(error="invalid_request", detail=first.get("msg"), status_code=400))

    try:
        response = await app.state.chat_handler.search(
            search_request.query,
            limit=search_request.limit,
            category=search_request.category,
        )
    except ChatEngineError as e:
        api_logger.warning("Search failed: %s", e.error_code)
        return _error_response(ErrorResponse(error=e.error_code, detail=str(e), status_code=e.status_code))
    except Exception as e:
        api_logger.error("Search error: %s", str(e), exc_info=True)
        return _error_response(ErrorResponse(error="internal_error", detail=str(e), status_code=500))
    return JSONResponse(status_code=200, content=response.model_dump(mode="json"))


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))

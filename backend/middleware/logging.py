"""Request logging middleware for development.

One line per request: a short request id, method, path, masked query
parameters, client address, status and duration. The id is echoed back in
the X-Request-ID header so a client error can be matched to the log line.

Bodies are never read here. Requests carry passwords, PINs and refresh
tokens, and responses carry revealed secrets.

Only enabled in dev mode (see main.py).
"""

import logging
import time
import uuid
from typing import Callable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

logger = logging.getLogger("api.requests")

QUIET_PATHS = frozenset({"/", "/health", "/docs", "/redoc", "/openapi.json", "/favicon.ico"})

SENSITIVE_PARAMS = {"token", "password", "pin", "key", "refresh_token"}


def sanitize_query_params(query_params: dict) -> dict:
    return {k: ("***" if k.lower() in SENSITIVE_PARAMS else v) for k, v in query_params.items()}


def _level_for(method: str, status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        # Auth failures are expected traffic but worth seeing
        return logging.WARNING
    return logging.DEBUG if method in ("GET", "HEAD", "OPTIONS") else logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs each API request with its outcome and duration."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in QUIET_PATHS:
            return await call_next(request)

        request_id = uuid.uuid4().hex[:8]
        request.state.request_id = request_id

        parts = [f"[{request_id}] {request.method} {request.url.path}"]
        if request.query_params:
            parts.append(f"params={sanitize_query_params(dict(request.query_params))}")
        parts.append(f"client={request.client.host if request.client else 'unknown'}")
        summary = " ".join(parts)

        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error("%s - %s after %.3fs", summary, type(e).__name__, time.perf_counter() - started)
            raise

        logger.log(
            _level_for(request.method, response.status_code),
            "%s - %s (%.3fs)",
            summary,
            response.status_code,
            time.perf_counter() - started,
        )
        response.headers["X-Request-ID"] = request_id
        return response


def configure_request_logging(log_level: str = "INFO") -> None:
    """Give the request logger its own handler. Call once at startup."""
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    # Lines would otherwise be emitted twice through the root handler
    logger.propagate = False

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
        logger.addHandler(handler)

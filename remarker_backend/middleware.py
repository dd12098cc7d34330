"""
Security Middleware

Bearer token auth for the relay / read API and request body size limits.

When AUTH_TOKEN env var is set, every ``/api/*`` endpoint requires
Authorization: Bearer <token>. When unset, auth is not enforced (dev mode).
The interactions webhook is authenticated by its Ed25519 signature instead.
"""

import logging
import os
from typing import Callable, Optional, Set

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("remarker_backend")

# ---------------------------------------------------------------------------
# Configuration from environment
# ---------------------------------------------------------------------------

AUTH_TOKEN: Optional[str] = os.getenv("AUTH_TOKEN")

# Only these prefixes are bearer-protected
PROTECTED_PREFIXES = ("/api/",)

# Paths that never require auth (exact match after stripping trailing slash)
HEALTH_PATHS: Set[str] = {
    "/",
    "/health",
    "/api/health",
}

# Body size limits (bytes)
MAX_BODY_BYTES: int = int(os.getenv("MAX_BODY_BYTES", str(1 * 1024 * 1024)))  # 1 MB default
MAX_JSON_BYTES: int = int(os.getenv("MAX_JSON_BYTES", str(256 * 1024)))     # 256 KB default


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _normalize_path(path: str) -> str:
    """Strip trailing slash for consistent matching."""
    return path.rstrip("/") if path != "/" else path


def _is_health(path: str) -> bool:
    return _normalize_path(path) in HEALTH_PATHS


def _is_protected(path: str) -> bool:
    return any(path.startswith(prefix) for prefix in PROTECTED_PREFIXES)


def _check_bearer_token(auth_header: Optional[str]) -> bool:
    """Validate Authorization header against AUTH_TOKEN."""
    if not AUTH_TOKEN:
        return True  # Auth not enforced when token unset
    if not auth_header:
        return False
    parts = auth_header.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return False
    return parts[1] == AUTH_TOKEN


# ---------------------------------------------------------------------------
# Auth Middleware
# ---------------------------------------------------------------------------

class AuthMiddleware(BaseHTTPMiddleware):
    """
    Bearer token auth for ``/api/*`` endpoints.

    When AUTH_TOKEN is set, rejects requests without a valid
    Authorization: Bearer <token> header (except health endpoints).
    """

    async def dispatch(self, request: Request, call_next: Callable):
        path = _normalize_path(request.url.path)

        if _is_health(path) or not _is_protected(request.url.path):
            return await call_next(request)

        auth_header = request.headers.get("authorization")
        if not _check_bearer_token(auth_header):
            logger.warning("[AUTH] Rejected request to %s - invalid/missing token", path)
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": "Invalid or missing authorization token."},
                headers={"WWW-Authenticate": "Bearer"},
            )

        return await call_next(request)


# ---------------------------------------------------------------------------
# Body Size Limit Middleware
# ---------------------------------------------------------------------------

class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    """
    Reject requests with bodies exceeding configured limits.

    JSON content types are limited to MAX_JSON_BYTES.
    All other content types are limited to MAX_BODY_BYTES.
    """

    async def dispatch(self, request: Request, call_next: Callable):
        content_length = request.headers.get("content-length")
        content_type = request.headers.get("content-type", "")

        if content_length is not None:
            try:
                length = int(content_length)
            except ValueError:
                return JSONResponse(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    content={"detail": "Invalid Content-Length header."},
                )

            limit = MAX_JSON_BYTES if "application/json" in content_type else MAX_BODY_BYTES
            if length > limit:
                logger.warning(
                    "[SECURITY] Rejected oversized request to %s (%d bytes, limit %d bytes)",
                    request.url.path,
                    length,
                    limit,
                )
                return JSONResponse(
                    status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                    content={"detail": f"Request body too large. Limit: {limit} bytes."},
                )

        return await call_next(request)


# ---------------------------------------------------------------------------
# Wiring helper
# ---------------------------------------------------------------------------

def configure_security(app):
    """
    Wire the security middleware onto the FastAPI app.

    Middleware executes in reverse registration order (last added = outermost),
    so auth runs before the body size check.
    """
    app.add_middleware(BodySizeLimitMiddleware)
    app.add_middleware(AuthMiddleware)

    token_status = "ENFORCED" if AUTH_TOKEN else "DISABLED (AUTH_TOKEN not set)"
    logger.info("[SECURITY] Middleware configured:")
    logger.info("[SECURITY]   Auth: %s", token_status)
    logger.info("[SECURITY]   Body limits: JSON=%d KB, other=%d KB",
                MAX_JSON_BYTES // 1024, MAX_BODY_BYTES // 1024)

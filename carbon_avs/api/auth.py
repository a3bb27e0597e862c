"""API authentication, input validation, and request tracing middleware.

Provides:
- Bearer token authentication via ``CARBON_AVS_API_KEY``
- Credit id validation for path parameters
- ``X-Request-ID`` response header, echoed from the caller when supplied
- One log line per request with credit id and hashed client IP
"""

import hashlib
import logging
import re
import secrets
import time
import uuid

from fastapi import Depends, HTTPException, Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from carbon_avs.config import get_config

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


# ---------------------------------------------------------------------------
# Input validation helpers
# ---------------------------------------------------------------------------

_CREDIT_ID_RE = re.compile(r"^[A-Za-z0-9\-_.]{1,78}$")


def validate_credit_id(credit_id: str) -> str:
    """Validate credit id: letters, digits, hyphens, underscores, periods."""
    credit_id = credit_id.strip()
    if not _CREDIT_ID_RE.match(credit_id):
        raise HTTPException(
            status_code=400,
            detail="Invalid credit id. Only letters, numbers, hyphens, underscores, and periods are allowed.",
        )
    return credit_id


# ---------------------------------------------------------------------------
# API key authentication
# ---------------------------------------------------------------------------

def require_api_key(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> str:
    """Validate the Bearer token against ``CARBON_AVS_API_KEY``.

    Raises 401 if the key is missing or invalid.  Skipped entirely when
    ``CARBON_AVS_DEMO_MODE=true``.
    """
    cfg = get_config()

    if cfg.demo_mode:
        return "demo"

    if not cfg.api_key:
        raise HTTPException(
            status_code=500,
            detail="Server misconfiguration: CARBON_AVS_API_KEY is not set.",
        )

    if credentials is None or not secrets.compare_digest(credentials.credentials, cfg.api_key):
        raise HTTPException(
            status_code=401,
            detail="Invalid or missing API key. Provide 'Authorization: Bearer <key>' header.",
        )
    return credentials.credentials


# ---------------------------------------------------------------------------
# Request-ID and logging middleware
# ---------------------------------------------------------------------------

_CREDIT_PATH_RE = re.compile(r"^/api/verifications/([^/]+)")


def _hash_ip(ip: str | None) -> str:
    """One-way hash of the client IP so logs never hold raw addresses."""
    if not ip:
        return "unknown"
    return hashlib.sha256(ip.encode()).hexdigest()[:12]


def credit_from_path(path: str) -> str:
    """Credit id addressed by a verification path, or ``-`` for other routes."""
    match = _CREDIT_PATH_RE.match(path)
    return match.group(1) if match else "-"


async def request_logging_middleware(request: Request, call_next):
    """Tag the response with X-Request-ID and log one line per request.

    A caller-supplied ``X-Request-ID`` is echoed back so a verification can
    be traced across services. Requests that address a credit log its id.
    """
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    credit = credit_from_path(request.url.path)
    start = time.monotonic()

    response: Response = await call_next(request)

    response.headers["X-Request-ID"] = request_id
    logger.info(
        "%s %s -> %d credit=%s request_id=%s ip=%s %dms",
        request.method,
        request.url.path,
        response.status_code,
        credit,
        request_id,
        _hash_ip(request.client.host if request.client else None),
        int((time.monotonic() - start) * 1000),
    )
    return response

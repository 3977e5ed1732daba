from __future__ import annotations

import time
from typing import Callable

from fastapi import Request, Response
from fastapi.security import HTTPAuthorizationCredentials

from app.core.audit import audit
from app.core.errors import ApiError
from app.core.logging_config import get_logger
from app.core.middleware import request_id_from
from app.core.security import load_principal, token_from_request
from app.db.session import Database

logger = get_logger("audit")


def _client_ip(request: Request) -> str | None:
    # Behind a proxy the first X-Forwarded-For hop is the client.
    xff = request.headers.get("X-Forwarded-For")
    if xff:
        return xff.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


def _actor(db, request: Request) -> tuple[str, str | None]:
    """Best-effort identity for a rejected request (no Depends in middleware)."""
    scheme, _, credentials = (request.headers.get("Authorization") or "").partition(" ")
    creds = None
    if scheme.lower() == "bearer" and credentials.strip():
        creds = HTTPAuthorizationCredentials(scheme=scheme, credentials=credentials.strip())

    token = token_from_request(request, creds)
    if not token:
        return "anonymous", None
    try:
        principal = load_principal(db, request.app.state.settings, token)
    except ApiError:
        return "anonymous", None
    return principal.username, principal.org_id


async def audit_http_middleware(request: Request, call_next: Callable) -> Response:
    """Write one audit row for every 401/403 the API answers with."""
    start = time.perf_counter()
    response: Response = await call_next(request)

    status_code = response.status_code
    if status_code not in (401, 403):
        return response

    duration_ms = int((time.perf_counter() - start) * 1000)
    request_id = getattr(request.state, "request_id", None) or request_id_from(request)
    database: Database = request.app.state.db
    with database.transaction() as db:
        actor, org_id = _actor(db, request)
        audit(
            db,
            actor=actor,
            action="http.denied",
            entity_type="http",
            entity_id=request.url.path[:64],
            payload={
                "method": request.method,
                "path": request.url.path,
                "status_code": status_code,
                "duration_ms": duration_ms,
            },
            request_id=request_id,
            ip_address=_client_ip(request),
            user_agent=request.headers.get("User-Agent"),
            status_code=status_code,
            success=False,
            org_id=org_id,
        )
    logger.info("http_denied_audited", extra={"path": request.url.path, "status_code": status_code})
    return response

from __future__ import annotations
import uuid
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from app.core.logging_config import LogContext
from app.core.tenant import set_org_id

def request_id_from(request: Request) -> str:
    return request.headers.get("X-Request-Id") or request.headers.get("X-Request-ID") or str(uuid.uuid4())

class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        LogContext.clear()
        set_org_id(None)
        request_id = request_id_from(request)
        request.state.request_id = request_id
        LogContext.set(request_id=request_id)
        response = await call_next(request)
        response.headers["X-Request-Id"] = request_id
        return response

from __future__ import annotations
import contextvars

# Org of the authenticated caller; set by security.get_principal.
_org: contextvars.ContextVar[str | None] = contextvars.ContextVar("org_id", default=None)

def set_org_id(org_id: str | None) -> None:
    _org.set(org_id)

def get_org_id() -> str | None:
    return _org.get()

from __future__ import annotations

import json
from typing import Any

from sqlalchemy.orm import Session

from app.db.models.security_audit import AuditLog
from app.core.tenant import get_org_id


def _json_safe(payload: dict | None) -> dict[str, Any]:
    safe_payload: dict[str, Any] = payload or {}
    try:
        # Round-trip now so a bad payload cannot fail the surrounding commit.
        return json.loads(json.dumps(safe_payload, default=str))
    except (TypeError, ValueError):
        return {"_payload_error": "non_json", "_payload_repr": repr(payload)}


def audit(
    db: Session,
    *,
    actor: str,
    action: str,
    entity_type: str,
    entity_id: str | None = None,
    payload: dict | None = None,
    request_id: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    status_code: int | None = None,
    success: bool = True,
    org_id: str | None = None,
) -> AuditLog:
    """Append an audit record to the caller's unit of work.

    Nothing is committed here: the row lands with the order or payment
    change it describes, or not at all.
    """
    row = AuditLog(
        org_id=org_id or get_org_id(),
        actor=actor,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        request_id=request_id,
        ip_address=ip_address,
        user_agent=user_agent,
        status_code=status_code,
        success=success,
        payload=_json_safe(payload),
    )
    db.add(row)
    return row

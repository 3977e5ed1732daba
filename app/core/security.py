from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import jwt, JWTError
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.errors import AuthenticationFailed, CrossOrgAccessDenied
from app.core.logging_config import LogContext, get_logger
from app.core.tenant import set_org_id
from app.db.models.common import STATUS_ACTIVE
from app.db.models.org import User, ROLE_SPECIALIST
from app.db.session import get_db

logger = get_logger("security")

bearer = HTTPBearer(auto_error=False)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


@dataclass
class Principal:
    user_id: int
    username: str
    org_id: str
    role_id: int
    is_super_admin: bool = False

    @property
    def is_specialist(self) -> bool:
        return self.role_id == ROLE_SPECIALIST and not self.is_super_admin

    def as_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "username": self.username,
            "orgId": self.org_id,
            "roleId": self.role_id,
            "isSuperAdmin": self.is_super_admin,
        }


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    try:
        return pwd_context.verify(password, password_hash)
    except ValueError:
        # Unrecognised hash format.
        return False


def settings_from(request: Request) -> Settings:
    return request.app.state.settings


def create_access_token(settings: Settings, user: User) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user.id),
        "org": user.org_id,
        "username": user.username,
        "role": user.role_id,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=settings.jwt_ttl_min)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_alg)


def token_from_request(request: Request, creds: HTTPAuthorizationCredentials | None) -> str | None:
    if creds and creds.credentials:
        return creds.credentials
    # Legacy clients send the raw token in a `token` header.
    return request.headers.get("token") or None


def decode_token(settings: Settings, token: str) -> dict[str, Any]:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_alg])
    except JWTError as exc:
        raise AuthenticationFailed("Invalid or expired token") from exc


def load_principal(db: Session, settings: Settings, token: str) -> Principal:
    payload = decode_token(settings, token)
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError) as exc:
        raise AuthenticationFailed("Invalid token subject") from exc

    user = db.get(User, user_id)
    if not user or user.status != STATUS_ACTIVE:
        raise AuthenticationFailed("User not found or disabled")
    return Principal(
        user_id=user.id,
        username=user.username,
        org_id=user.org_id,
        role_id=user.role_id,
        is_super_admin=bool(user.is_super_admin),
    )


def get_principal(
    request: Request,
    creds: HTTPAuthorizationCredentials | None = Depends(bearer),
    db: Session = Depends(get_db),
) -> Principal:
    token = token_from_request(request, creds)
    if not token:
        raise AuthenticationFailed("Missing access token")

    principal = load_principal(db, settings_from(request), token)
    request.state.principal = principal
    set_org_id(principal.org_id)
    LogContext.set(org_id=principal.org_id, user_id=str(principal.user_id))
    return principal


def enforce_org(body_org_id: str | None, principal: Principal) -> str:
    """Return the org every write must use.

    A body org that differs from the caller's is rejected; otherwise the
    caller's org always wins, whatever the body said.
    """
    if body_org_id not in (None, "") and str(body_org_id) != principal.org_id:
        logger.warning(
            "cross_org_access_denied",
            extra={"user_org_id": principal.org_id, "body_org_id": str(body_org_id)},
        )
        raise CrossOrgAccessDenied(userOrgId=principal.org_id, requestedOrgId=str(body_org_id))
    return principal.org_id

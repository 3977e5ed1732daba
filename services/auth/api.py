from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from app.core.errors import AuthenticationFailed
from app.core.logging_config import get_logger
from app.core.security import (
    Principal,
    create_access_token,
    get_principal,
    settings_from,
    verify_password,
)
from app.db.models.common import STATUS_ACTIVE
from app.db.models.org import Organization, User
from app.db.session import get_db
from services._crud import ok

logger = get_logger("auth")

router = APIRouter(prefix="/auth", tags=["auth"])


class LoginIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    org_id: str = Field(..., alias="orgId")
    username: str
    password: str


def user_out(user: User) -> dict:
    return {
        "id": user.id,
        "orgId": user.org_id,
        "username": user.username,
        "realName": user.real_name,
        "roleId": user.role_id,
        "isSuperAdmin": bool(user.is_super_admin),
    }


@router.post("/login")
def login(payload: LoginIn, request: Request, db: Session = Depends(get_db)):
    org = db.query(Organization).filter(Organization.org_id == payload.org_id).first()
    user = (db.query(User)
            .filter(User.org_id == payload.org_id, User.username == payload.username)
            .first())
    if (
        not org or org.status != STATUS_ACTIVE
        or not user or user.status != STATUS_ACTIVE
        or not verify_password(payload.password, user.password_hash)
    ):
        logger.warning("login_failed", extra={"org_id": payload.org_id, "username": payload.username})
        raise AuthenticationFailed("Invalid organization, username or password")

    token = create_access_token(settings_from(request), user)
    logger.info("login_succeeded", extra={"org_id": user.org_id, "user_id": str(user.id)})
    return ok({"token": token, "user": user_out(user)})


@router.get("/me")
def me(principal: Principal = Depends(get_principal)):
    return ok(principal.as_dict())

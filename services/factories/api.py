from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.audit import audit
from app.core.errors import ValidationFailed
from app.core.security import Principal, get_principal, enforce_org
from app.db.models.common import STATUS_ACTIVE
from app.db.models.factory import Factory
from app.db.session import get_db, in_transaction
from services._crud import ok, paged, page_window, money
from services.ledger.service import get_factory, list_entries
from services.ledger.settlement import ZERO

router = APIRouter(prefix="/factories", tags=["factories"])


class FactoryIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    org_id: str | int | None = Field(None, alias="orgId")
    name: str
    code: str | None = None
    contact_name: str | None = Field(None, alias="contactName")
    contact_phone: str | None = Field(None, alias="phone")
    address: str | None = None
    remark: str | None = None
    processes: list = Field(default_factory=list)


def factory_out(f: Factory) -> dict:
    return {
        "id": f.id,
        "orgId": f.org_id,
        "name": f.name,
        "code": f.code,
        "contactName": f.contact_name,
        "phone": f.contact_phone,
        "address": f.address,
        "remark": f.remark,
        "processes": f.processes or [],
        "status": f.status,
        "balance": money(f.balance),
        "debt": money(f.debt),
    }


def entry_out(e) -> dict:
    return {
        "id": e.id,
        "entryType": e.entry_type,
        "source": e.source,
        "refNo": e.ref_no,
        "fee": money(e.fee),
        "payment": money(e.payment),
        "balanceBefore": money(e.balance_before),
        "balanceAfter": money(e.balance_after),
        "debtBefore": money(e.debt_before),
        "debtAfter": money(e.debt_after),
        "createdBy": e.created_by,
        "createdAt": e.created_at.isoformat() if e.created_at else None,
    }


def _next_code(db: Session, org_id: str) -> str:
    n = db.query(Factory).filter(Factory.org_id == org_id).count() + 1
    code = f"FAC{n:03d}"
    while db.query(Factory.id).filter(Factory.org_id == org_id, Factory.code == code).first():
        n += 1
        code = f"FAC{n:03d}"
    return code


@router.get("")
def list_factories(keyword: str | None = None, page: str | None = None, pageSize: str | None = None,
                   principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    p, size, offset, limit = page_window(page, pageSize)
    q = db.query(Factory).filter(Factory.org_id == principal.org_id)
    if keyword:
        like = f"%{keyword}%"
        q = q.filter(or_(Factory.name.like(like), Factory.code.like(like), Factory.contact_phone.like(like)))
    total = q.count()
    rows = q.order_by(Factory.id.asc()).offset(offset).limit(limit).all()
    return ok(paged([factory_out(f) for f in rows], total, p, size))


@router.get("/{factory_id}")
def get_factory_detail(factory_id: int, principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    return ok(factory_out(get_factory(db, principal.org_id, factory_id)))


@router.post("", status_code=201)
def create_factory(payload: FactoryIn, request: Request,
                   principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    org_id = enforce_org(payload.org_id, principal)
    name = payload.name.strip()
    if not name:
        raise ValidationFailed("Factory name is required")
    if db.query(Factory.id).filter(Factory.org_id == org_id, Factory.name == name).first():
        raise ValidationFailed("A factory with this name already exists")

    with in_transaction(db):
        f = Factory(
            org_id=org_id,
            name=name,
            code=(payload.code or "").strip() or _next_code(db, org_id),
            contact_name=payload.contact_name,
            contact_phone=payload.contact_phone,
            address=payload.address,
            remark=payload.remark,
            processes=list(payload.processes),
            status=STATUS_ACTIVE,
            balance=ZERO,
            debt=ZERO,
        )
        db.add(f)
        try:
            db.flush()
        except IntegrityError as exc:
            # Lost a race with a concurrent create of the same name.
            raise ValidationFailed("A factory with this name already exists") from exc
        audit(db, actor=principal.username, action="factory.create", entity_type="factories",
              entity_id=str(f.id), payload={"name": name},
              request_id=getattr(request.state, "request_id", None), org_id=org_id)
        data = factory_out(f)
    return ok(data, "Factory created")


@router.get("/{factory_id}/accounts")
def list_factory_accounts(factory_id: int, page: str | None = None, pageSize: str | None = None,
                          principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    get_factory(db, principal.org_id, factory_id)
    p, size, offset, limit = page_window(page, pageSize)
    rows, total = list_entries(db, principal.org_id, factory_id, offset=offset, limit=limit)
    return ok(paged([entry_out(e) for e in rows], total, p, size))

from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from app.core.audit import audit
from app.core.security import Principal, get_principal
from app.db.session import get_db, in_transaction
from services._crud import ok, paged, page_window, money
from services.ledger.service import get_factory
from services.payments import service

router = APIRouter(prefix="/factories", tags=["payments"])


class PaymentIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    amount: Decimal
    payment_method: str | None = Field(None, alias="paymentMethod")
    remark: str | None = None
    image_urls: list[str] = Field(default_factory=list, alias="imageUrls")


def payment_out(p) -> dict:
    return {
        "id": p.id,
        "paymentNo": p.payment_no,
        "factoryId": p.factory_id,
        "amount": money(p.amount),
        "paymentMethod": p.payment_method,
        "remark": p.remark,
        "imageUrls": p.image_urls or [],
        "status": p.status,
        "createdBy": p.created_by,
        "createdAt": p.created_at.isoformat() if p.created_at else None,
    }


@router.get("/{factory_id}/payments")
def list_factory_payments(factory_id: int, page: str | None = None, pageSize: str | None = None,
                          principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    get_factory(db, principal.org_id, factory_id)
    p, size, offset, limit = page_window(page, pageSize)
    rows, total = service.list_payments(
        db, principal.org_id, factory_id,
        created_by=principal.user_id if principal.is_specialist else None,
        offset=offset, limit=limit,
    )
    return ok(paged([payment_out(r) for r in rows], total, p, size))


@router.post("/{factory_id}/payments", status_code=201)
def add_factory_payment(factory_id: int, payload: PaymentIn, request: Request,
                        principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    with in_transaction(db):
        row, account = service.record_direct_payment(
            db,
            org_id=principal.org_id,
            factory_id=factory_id,
            amount=payload.amount,
            method=payload.payment_method,
            remark=payload.remark,
            image_urls=payload.image_urls,
            user_id=principal.user_id,
        )
        audit(db, actor=principal.username, action="factory_payment.create", entity_type="factory_payments",
              entity_id=str(row.id), payload={"payment_no": row.payment_no, "amount": row.amount},
              request_id=getattr(request.state, "request_id", None), org_id=principal.org_id)
        data = {
            "id": row.id,
            "paymentNo": row.payment_no,
            "newBalance": money(account.balance),
            "newDebt": money(account.debt),
        }
    return ok(data, "Payment recorded")


@router.put("/{factory_id}/payments/{payment_id}/void")
def void_factory_payment(factory_id: int, payment_id: int, request: Request,
                         principal: Principal = Depends(get_principal), db: Session = Depends(get_db)):
    with in_transaction(db):
        row, account = service.void_direct_payment(
            db, org_id=principal.org_id, factory_id=factory_id, payment_id=payment_id, user_id=principal.user_id,
        )
        audit(db, actor=principal.username, action="factory_payment.void", entity_type="factory_payments",
              entity_id=str(row.id), payload={"payment_no": row.payment_no, "amount": row.amount},
              request_id=getattr(request.state, "request_id", None), org_id=principal.org_id)
        data = {
            "id": row.id,
            "paymentNo": row.payment_no,
            "status": row.status,
            "newBalance": money(account.balance),
            "newDebt": money(account.debt),
        }
    return ok(data, "Payment voided")

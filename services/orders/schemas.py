from __future__ import annotations

from decimal import Decimal
from typing import Union

from pydantic import BaseModel, ConfigDict, Field


class _In(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class OrderItemIn(_In):
    product_id: int | None = Field(None, alias="productId")
    product_no: str | None = Field(None, alias="productNo")
    color_id: int | None = Field(None, alias="colorId")
    color_code: str | None = Field(None, alias="colorCode")
    size_id: int | None = Field(None, alias="sizeId")
    size_code: str | None = Field(None, alias="sizeCode")
    weight: Decimal = Decimal("0")
    quantity: int = 0
    fee: Decimal = Decimal("0")  # receive orders only


class SendOrderIn(_In):
    org_id: Union[str, int, None] = Field(None, alias="orgId")
    factory_id: int = Field(..., alias="factoryId")
    process_id: int = Field(..., alias="processId")
    total_weight: Decimal | None = Field(None, alias="totalWeight")
    total_quantity: int | None = Field(None, alias="totalQuantity")
    remark: str | None = None
    items: list[OrderItemIn] = Field(..., min_length=1)


class ReceiveOrderIn(SendOrderIn):
    total_fee: Decimal | None = Field(None, alias="totalFee")
    payment_amount: Decimal = Field(Decimal("0"), alias="paymentAmount")
    payment_method: str | None = Field(None, alias="paymentMethod")


class SendOrderUpdateIn(_In):
    remark: str | None = None

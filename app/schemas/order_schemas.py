from pydantic import BaseModel, Field, StrictInt
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from app.constants.order_status import OrderStatus


# ---------- requests ----------

class OrderItemCreate(BaseModel):
    product_id: UUID
    qty: StrictInt = Field(..., gt=0)


class OrderCreate(BaseModel):
    address_id: UUID
    items: List[OrderItemCreate] = Field(..., min_length=1)


class OrderStatusUpdate(BaseModel):
    order_status: OrderStatus


# ---------- responses ----------

class OrderAddressRead(BaseModel):
    save_as: str
    pincode: str
    city: str
    state: str
    house_number: str
    street_locality: str
    mobile: str
    created_at: datetime

    class Config:
        from_attributes = True


class OrderItemRead(BaseModel):
    id: UUID
    order_id: UUID
    product_id: UUID
    product_name: str
    product_price: Decimal
    qty: int
    subtotal: Decimal
    created_at: datetime

    class Config:
        from_attributes = True


class OrderRead(BaseModel):
    id: UUID
    order_code: str
    user_id: UUID
    total_qty: int
    final_amount: Decimal
    order_status: OrderStatus
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class OrderDetailRead(OrderRead):
    address: Optional[OrderAddressRead] = None
    items: List[OrderItemRead] = []


class OrderStatusEvent(BaseModel):
    order_id: UUID
    order_code: str
    order_status: OrderStatus

from sqlmodel import SQLModel, Field, Relationship
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from app.constants.order_status import OrderStatus
from app.models.order_address import OrderAddress
from app.models.order_item import OrderItem

class Order(SQLModel, table=True):
    __tablename__ = "order"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    order_code: str = Field(max_length=16, unique=True, index=True)
    user_id: UUID = Field(foreign_key="user.id", index=True)

    # written once from the line items
    total_qty: int
    final_amount: Decimal = Field(max_digits=12, decimal_places=2)

    order_status: str = Field(default=OrderStatus.ORDER_RECEIVED.value, max_length=32)

    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    # relationships, loaded eagerly
    address: Optional["OrderAddress"] = Relationship(
        back_populates="order",
        sa_relationship_kwargs={"uselist": False, "lazy": "selectin"},
    )
    items: List["OrderItem"] = Relationship(
        back_populates="order",
        sa_relationship_kwargs={"lazy": "selectin", "order_by": "OrderItem.created_at"},
    )

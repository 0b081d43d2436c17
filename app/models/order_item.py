from sqlmodel import SQLModel, Field, Relationship
from typing import Optional, TYPE_CHECKING
from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

if TYPE_CHECKING:
    from app.models.order import Order

class OrderItem(SQLModel, table=True):
    __tablename__ = "order_item"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    order_id: UUID = Field(foreign_key="order.id", index=True)

    # plain reference, products can be deleted without touching past orders
    product_id: UUID

    product_name: str
    product_price: Decimal = Field(max_digits=10, decimal_places=2)
    qty: int
    subtotal: Decimal = Field(max_digits=12, decimal_places=2)

    created_at: datetime = Field(default_factory=datetime.utcnow)

    order: Optional["Order"] = Relationship(back_populates="items")

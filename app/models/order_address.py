from sqlmodel import SQLModel, Field, Relationship
from typing import Optional, TYPE_CHECKING
from datetime import datetime
from uuid import UUID, uuid4

if TYPE_CHECKING:
    from app.models.order import Order


class OrderAddress(SQLModel, table=True):
    """Delivery address copied at checkout. Deliberately not linked to the address table."""

    __tablename__ = "order_address"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    order_id: UUID = Field(foreign_key="order.id", unique=True)

    save_as: str
    pincode: str
    city: str
    state: str
    house_number: str
    street_locality: str
    mobile: str

    created_at: datetime = Field(default_factory=datetime.utcnow)

    order: Optional["Order"] = Relationship(back_populates="address")

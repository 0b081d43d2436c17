# app/services/order_snapshot.py

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, List, Mapping
from uuid import UUID

from sqlmodel import Session

from app.exceptions import (
    AddressNotFound,
    AddressNotOwned,
    InvalidQuantity,
    ProductNotFound,
)
from app.models.address import Address
from app.models.product import Product

SNAPSHOT_ADDRESS_FIELDS = (
    "save_as",
    "pincode",
    "city",
    "state",
    "house_number",
    "street_locality",
    "mobile",
)


@dataclass(frozen=True)
class AddressSnapshot:
    save_as: str
    pincode: str
    city: str
    state: str
    house_number: str
    street_locality: str
    mobile: str

    def as_dict(self) -> dict:
        return {name: getattr(self, name) for name in SNAPSHOT_ADDRESS_FIELDS}


@dataclass(frozen=True)
class LineItemSnapshot:
    product_id: UUID
    product_name: str
    product_price: Decimal
    qty: int
    subtotal: Decimal


@dataclass(frozen=True)
class OrderSnapshot:
    address: AddressSnapshot
    items: List[LineItemSnapshot] = field(default_factory=list)
    total_qty: int = 0
    final_amount: Decimal = Decimal("0.00")


def build_address_snapshot(session: Session, address_id: UUID, user_id: UUID) -> AddressSnapshot:
    address = session.get(Address, address_id)

    if address is None:
        raise AddressNotFound(address_id)

    if address.user_id != user_id:
        raise AddressNotOwned(address_id)

    return AddressSnapshot(**{name: getattr(address, name) for name in SNAPSHOT_ADDRESS_FIELDS})


def _check_qty(product_id, qty):
    # bool is an int subclass, reject it explicitly
    if isinstance(qty, bool) or not isinstance(qty, int) or qty < 1:
        raise InvalidQuantity(product_id, qty)


def build_line_items(session: Session, items: Iterable[Mapping]) -> List[LineItemSnapshot]:
    """
    Resolve each requested product and freeze its current name and price.

    The price always comes from the product row, never from the request.
    """
    line_items = []

    for item in items:
        product_id = item["product_id"]
        qty = item["qty"]
        _check_qty(product_id, qty)

        product = session.get(Product, product_id)
        if product is None:
            raise ProductNotFound(product_id)

        price = Decimal(product.price)
        line_items.append(
            LineItemSnapshot(
                product_id=product.id,
                product_name=product.product_name,
                product_price=price,
                qty=qty,
                subtotal=price * qty,
            )
        )

    return line_items


def build_order_snapshot(
    session: Session,
    user_id: UUID,
    address_id: UUID,
    items: Iterable[Mapping],
) -> OrderSnapshot:
    address = build_address_snapshot(session, address_id, user_id)
    line_items = build_line_items(session, items)

    total_qty = sum(item.qty for item in line_items)
    final_amount = sum((item.subtotal for item in line_items), Decimal("0.00"))

    return OrderSnapshot(
        address=address,
        items=line_items,
        total_qty=total_qty,
        final_amount=final_amount,
    )

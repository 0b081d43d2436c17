# app/services/order_store.py
"""
Persistence for orders, their address snapshot and line items.

Nothing in here checks whether a status change is legal; that is the job of
app.services.order_transitions. The conditional UPDATEs below only make sure
two racing writers cannot both win.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import selectinload
from sqlmodel import Session, select

from app.constants.order_status import OrderStatus
from app.models.order import Order
from app.models.order_address import OrderAddress
from app.models.order_item import OrderItem
from app.services.order_code import generate_unique_order_code
from app.services.order_snapshot import AddressSnapshot, LineItemSnapshot
from app.services.order_transitions import cancellable_statuses

logger = logging.getLogger(__name__)


def _with_details(statement):
    return statement.options(
        selectinload(Order.address),
        selectinload(Order.items),
    )


def create_with_items(
    session: Session,
    user_id: UUID,
    address_snapshot: AddressSnapshot,
    total_qty: int,
    final_amount: Decimal,
    line_items: Sequence[LineItemSnapshot],
) -> Order:
    """
    Insert order + address snapshot + items as one transaction.

    Any failure rolls everything back and is re-raised.
    """
    try:
        order = Order(
            order_code=generate_unique_order_code(session),
            user_id=user_id,
            total_qty=total_qty,
            final_amount=final_amount,
            order_status=OrderStatus.ORDER_RECEIVED.value,
        )
        session.add(order)
        session.flush()

        session.add(OrderAddress(order_id=order.id, **address_snapshot.as_dict()))

        for item in line_items:
            session.add(
                OrderItem(
                    order_id=order.id,
                    product_id=item.product_id,
                    product_name=item.product_name,
                    product_price=item.product_price,
                    qty=item.qty,
                    subtotal=item.subtotal,
                )
            )

        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Order {order.order_code} created for user {user_id} with {len(line_items)} items")
    return get_by_id(session, order.id)


def get_by_user_id(session: Session, user_id: UUID) -> List[Order]:
    return session.exec(
        _with_details(select(Order))
        .where(Order.user_id == user_id)
        .order_by(Order.created_at.desc())
    ).all()


def get_by_id(session: Session, order_id: UUID) -> Optional[Order]:
    return session.exec(
        _with_details(select(Order)).where(Order.id == order_id)
    ).first()


def _conditional_update(session: Session, statement) -> bool:
    try:
        result = session.connection().execute(statement)
        session.commit()
    except Exception:
        session.rollback()
        raise
    return result.rowcount > 0


def update_status(
    session: Session,
    order_id: UUID,
    new_status: OrderStatus,
    expected_status: Optional[OrderStatus] = None,
) -> Optional[Order]:
    """
    Raw status write. With `expected_status` the row is only touched while it
    still holds that status, so a stale writer affects zero rows.

    Returns None when nothing was updated.
    """
    statement = (
        update(Order)
        .where(Order.id == order_id)
        .values(order_status=OrderStatus(new_status).value, updated_at=datetime.utcnow())
    )
    if expected_status is not None:
        statement = statement.where(Order.order_status == OrderStatus(expected_status).value)

    if not _conditional_update(session, statement):
        return None

    return get_by_id(session, order_id)


def cancel(session: Session, order_id: UUID, user_id: UUID) -> Optional[Order]:
    """
    Cancel only if the order belongs to user_id and is still cancellable.
    Returns None when no row matched.
    """
    statement = (
        update(Order)
        .where(Order.id == order_id)
        .where(Order.user_id == user_id)
        .where(Order.order_status.in_([status.value for status in cancellable_statuses()]))
        .values(order_status=OrderStatus.CANCELLED.value, updated_at=datetime.utcnow())
    )

    if not _conditional_update(session, statement):
        return None

    return get_by_id(session, order_id)

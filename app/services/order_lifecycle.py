# app/services/order_lifecycle.py

import logging
from uuid import UUID

from sqlmodel import Session

from app.constants.order_status import OrderStatus
from app.exceptions import ConflictError, InvalidTransitionError, OrderNotFound
from app.models.order import Order
from app.services import order_store
from app.services.order_transitions import validate_transition

logger = logging.getLogger(__name__)

# one re-read after losing a race, then give up
MAX_WRITE_ATTEMPTS = 2


def _ensure_legal(order: Order, target: OrderStatus):
    result = validate_transition(order.order_status, target)
    if not result.accepted:
        raise InvalidTransitionError(result.rejection)


def change_status(session: Session, order_id: UUID, target: OrderStatus) -> Order:
    """
    Validate and apply a status change.

    The write is conditional on the status that was validated. If another
    request changed the order in between, the order is re-read and the
    transition re-validated against what is actually stored.
    """
    target = OrderStatus(target)

    order = order_store.get_by_id(session, order_id)
    if order is None:
        raise OrderNotFound(order_id)

    for _ in range(MAX_WRITE_ATTEMPTS):
        _ensure_legal(order, target)
        current = order.order_status

        updated = order_store.update_status(
            session, order_id, target, expected_status=current
        )
        if updated is not None:
            logger.info(f"Order {updated.order_code}: {current} -> {target.value}")
            return updated

        logger.info(f"Order {order_id} changed while updating to {target.value}, re-validating")
        order = order_store.get_by_id(session, order_id)
        if order is None:
            raise OrderNotFound(order_id)

    raise ConflictError(f"Order {order_id} kept changing while updating status")


def cancel_order(session: Session, order_id: UUID, user_id: UUID) -> Order:
    """
    Cancel an order owned by user_id.

    Orders that do not exist and orders owned by someone else both raise
    OrderNotFound.
    """
    order = order_store.get_by_id(session, order_id)
    if order is None or order.user_id != user_id:
        raise OrderNotFound(order_id)

    _ensure_legal(order, OrderStatus.CANCELLED)

    cancelled = order_store.cancel(session, order_id, user_id)
    if cancelled is not None:
        logger.info(f"Order {cancelled.order_code} cancelled by user {user_id}")
        return cancelled

    # lost a race, report what the order turned into
    order = order_store.get_by_id(session, order_id)
    if order is None:
        raise OrderNotFound(order_id)
    _ensure_legal(order, OrderStatus.CANCELLED)

    raise ConflictError(f"Order {order_id} could not be cancelled")

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse
from starlette.concurrency import run_in_threadpool
from sqlmodel import Session

from app.database import get_session, session_scope
from app.dependencies.broadcaster import get_broadcaster
from app.exceptions import (
    AddressNotFound,
    AddressNotOwned,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    OrderNotFound,
    ValidationError,
)
from app.models.order import Order
from app.models.user import User
from app.schemas.order_schemas import (
    OrderCreate,
    OrderDetailRead,
    OrderStatusEvent,
    OrderStatusUpdate,
)
from app.services import order_lifecycle, order_store
from app.services.order_broadcaster import ORDER_STATUS_UPDATE, OrderBroadcaster
from app.services.order_snapshot import build_order_snapshot
from app.utils.responses import success
from app.utils.token import authenticate_token, extract_token, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter()


def _order_data(order: Order) -> OrderDetailRead:
    return OrderDetailRead.model_validate(order)


def _publish_status(broadcaster: OrderBroadcaster, order: Order):
    # only called once the write has committed
    event = OrderStatusEvent(
        order_id=order.id,
        order_code=order.order_code,
        order_status=order.order_status,
    )
    broadcaster.send_to_user(order.user_id, ORDER_STATUS_UPDATE, event.model_dump(mode="json"))


# Place order

@router.post("", status_code=status.HTTP_201_CREATED)
def create_order(
    data: OrderCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    """
    Snapshot the delivery address and current product prices, then store the
    order with its items in one transaction.
    """
    try:
        snapshot = build_order_snapshot(
            session,
            user_id=current_user.id,
            address_id=data.address_id,
            items=[item.model_dump() for item in data.items],
        )
    except (AddressNotFound, AddressNotOwned):
        raise HTTPException(400, "Invalid delivery address")
    except (NotFoundError, ValidationError) as e:
        raise HTTPException(400, e.message)

    try:
        order = order_store.create_with_items(
            session,
            user_id=current_user.id,
            address_snapshot=snapshot.address,
            total_qty=snapshot.total_qty,
            final_amount=snapshot.final_amount,
            line_items=snapshot.items,
        )
    except Exception:
        logger.exception("Error creating order")
        raise HTTPException(500, "Failed to place order")

    return success(_order_data(order))


# My orders

@router.get("/my")
def get_my_orders(
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    orders = order_store.get_by_user_id(session, current_user.id)
    return success([_order_data(o) for o in orders])


# Live updates

def _stream_user_id(request: Request, token: Optional[str]) -> UUID:
    # short lived session, nothing stays open while the stream runs
    with session_scope() as session:
        return authenticate_token(session, extract_token(request, token)).id


@router.get("/stream")
async def stream_order_updates(
    request: Request,
    token: Optional[str] = Query(None),
    broadcaster: OrderBroadcaster = Depends(get_broadcaster),
):
    user_id = await run_in_threadpool(_stream_user_id, request, token)

    return StreamingResponse(
        broadcaster.stream(user_id, request.is_disconnected),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


# Single order

@router.get("/{order_id}")
def get_order(
    order_id: UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user)
):
    order = order_store.get_by_id(session, order_id)

    if not order or order.user_id != current_user.id:
        raise HTTPException(404, "Order not found")

    return success(_order_data(order))


@router.patch("/{order_id}/status")
def update_order_status(
    order_id: UUID,
    data: OrderStatusUpdate,
    session: Session = Depends(get_session),
    broadcaster: OrderBroadcaster = Depends(get_broadcaster),
    current_user: User = Depends(get_current_user)
):
    try:
        order = order_lifecycle.change_status(session, order_id, data.order_status)
    except OrderNotFound:
        raise HTTPException(404, "Order not found")
    except InvalidTransitionError as e:
        raise HTTPException(400, e.message)
    except ConflictError as e:
        logger.error(f"Status update conflict: {e.message}")
        raise HTTPException(500, "Failed to update order status")
    except Exception:
        logger.exception(f"Error updating status of order {order_id}")
        raise HTTPException(500, "Failed to update order status")

    _publish_status(broadcaster, order)

    return success(_order_data(order), message="Order status updated")


@router.patch("/{order_id}/cancel")
def cancel_order(
    order_id: UUID,
    session: Session = Depends(get_session),
    broadcaster: OrderBroadcaster = Depends(get_broadcaster),
    current_user: User = Depends(get_current_user)
):
    try:
        order = order_lifecycle.cancel_order(session, order_id, current_user.id)
    except OrderNotFound:
        raise HTTPException(404, "Order not found")
    except InvalidTransitionError as e:
        raise HTTPException(400, e.message)
    except ConflictError as e:
        logger.error(f"Cancel conflict: {e.message}")
        raise HTTPException(500, "Failed to cancel order")
    except Exception:
        logger.exception(f"Error cancelling order {order_id}")
        raise HTTPException(500, "Failed to cancel order")

    _publish_status(broadcaster, order)

    return success(_order_data(order), message="Order cancelled successfully")

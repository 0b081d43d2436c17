# app/services/order_transitions.py
"""
Order status state machine.

    Order Received -> Preparing -> Out for Delivery -> Delivered

Cancelled can be reached from any of the first three statuses. Delivered and
Cancelled are terminal. Nothing here touches the database: callers validate
first and then ask the order store to write.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from app.constants.order_status import (
    ACTIVE_STATUSES,
    NEXT_STATUS,
    TERMINAL_STATUSES,
    OrderStatus,
)


class RejectionKind(str, Enum):
    ALREADY_CANCELLED = "already_cancelled"
    ALREADY_DELIVERED = "already_delivered"
    WRONG_NEXT_STEP = "wrong_next_step"


@dataclass(frozen=True)
class TransitionRejection:
    kind: RejectionKind
    current: OrderStatus
    target: OrderStatus
    expected: Optional[OrderStatus] = None

    @property
    def message(self) -> str:
        if self.kind is RejectionKind.ALREADY_CANCELLED:
            return "Order is already cancelled, no further updates allowed"

        if self.kind is RejectionKind.ALREADY_DELIVERED:
            if self.target is OrderStatus.CANCELLED:
                return "Order is already delivered, cannot cancel"
            return "Order is already delivered, no further updates allowed"

        return (
            f"Invalid status transition from '{self.current.value}'. "
            f"Next allowed status is '{self.expected.value}'"
        )


@dataclass(frozen=True)
class TransitionResult:
    current: OrderStatus
    target: OrderStatus
    rejection: Optional[TransitionRejection] = None

    @property
    def accepted(self) -> bool:
        return self.rejection is None

    @property
    def reason(self) -> Optional[str]:
        return self.rejection.message if self.rejection else None


def validate_transition(
    current: Union[OrderStatus, str],
    target: Union[OrderStatus, str],
) -> TransitionResult:
    """
    Decide whether an order may move from `current` to `target`.

    Raises ValueError for strings that are not known statuses.
    """
    current = OrderStatus(current)
    target = OrderStatus(target)

    def reject(kind, expected=None):
        return TransitionResult(
            current=current,
            target=target,
            rejection=TransitionRejection(kind, current, target, expected),
        )

    if current is OrderStatus.CANCELLED:
        return reject(RejectionKind.ALREADY_CANCELLED)

    if current is OrderStatus.DELIVERED:
        return reject(RejectionKind.ALREADY_DELIVERED)

    # cancellation is a side exit, not a step in the chain
    if target is OrderStatus.CANCELLED:
        return TransitionResult(current=current, target=target)

    expected = NEXT_STATUS[current]
    if target is not expected:
        return reject(RejectionKind.WRONG_NEXT_STEP, expected)

    return TransitionResult(current=current, target=target)


def is_terminal(status: Union[OrderStatus, str]) -> bool:
    return OrderStatus(status) in TERMINAL_STATUSES


def cancellable_statuses() -> tuple:
    """Statuses from which a cancel request is accepted."""
    return tuple(
        status for status in ACTIVE_STATUSES
        if validate_transition(status, OrderStatus.CANCELLED).accepted
    )

import logging
import secrets
import string

from sqlmodel import Session, select

from app.config import settings
from app.models.order import Order

logger = logging.getLogger(__name__)

ORDER_CODE_PREFIX = "ORD-"
ORDER_CODE_LENGTH = 6
ORDER_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_order_code() -> str:
    """Random code like ORD-A7X3B2"""
    return ORDER_CODE_PREFIX + "".join(
        secrets.choice(ORDER_CODE_ALPHABET) for _ in range(ORDER_CODE_LENGTH)
    )


def order_code_exists(session: Session, code: str) -> bool:
    return session.exec(
        select(Order.id).where(Order.order_code == code)
    ).first() is not None


def generate_unique_order_code(session: Session, attempts: int | None = None) -> str:
    """
    Must run on the session that inserts the order so the check and the
    insert share one transaction.
    """
    attempts = attempts or settings.order_code_attempts

    code = generate_order_code()
    for attempt in range(attempts):
        if not order_code_exists(session, code):
            return code
        logger.info(f"Order code collision on {code} (attempt {attempt + 1})")
        code = generate_order_code()

    # the id is the real key, the unique index still guards the table
    logger.warning(f"Order code still colliding after {attempts} attempts, using {code}")
    return code

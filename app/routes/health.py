import time

from fastapi import APIRouter, Depends
from sqlmodel import Session, text
from datetime import datetime

from app.database import get_session
from app.dependencies.broadcaster import get_broadcaster
from app.services.order_broadcaster import OrderBroadcaster

router = APIRouter()

STARTED_AT = time.monotonic()

@router.get("/health")
def health_check(
    session: Session = Depends(get_session),
    broadcaster: OrderBroadcaster = Depends(get_broadcaster),
):
    db_status = "ok"

    try:
        # simple DB ping
        session.exec(text("SELECT 1"))
    except Exception:
        db_status = "failed"

    return {
        "status": "ok",
        "uptime": round(time.monotonic() - STARTED_AT, 3),
        "database": db_status,
        "order_streams": broadcaster.connection_count(),
        "timestamp": datetime.utcnow().isoformat()
    }

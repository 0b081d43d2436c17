import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from app.database import create_db_and_tables
from app.config import settings
from app.routes import health, orders
from app.services.order_broadcaster import OrderBroadcaster
from app.utils.responses import register_exception_handlers

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Run DB creation ONLY in local
    if settings.env == "local":
        create_db_and_tables()
    yield

app = FastAPI(title="Food Delivery Order API", lifespan=lifespan)

app.state.broadcaster = OrderBroadcaster(
    heartbeat_seconds=settings.sse_heartbeat_seconds,
    max_queue=settings.sse_queue_size,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(health.router, prefix="/api", tags=["Health"])
app.include_router(orders.router, prefix="/api/orders", tags=["Orders"])


@app.get("/")
def root():
    return {
        "message": "Food Delivery API is running",
        "order_endpoints": [
            "/api/orders", "/api/orders/my", "/api/orders/stream",
            "/api/orders/{order_id}", "/api/orders/{order_id}/status",
            "/api/orders/{order_id}/cancel"
        ],
    }

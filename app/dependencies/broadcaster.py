from fastapi import Request

from app.services.order_broadcaster import OrderBroadcaster


def get_broadcaster(request: Request) -> OrderBroadcaster:
    return request.app.state.broadcaster

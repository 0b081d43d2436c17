# app/services/order_broadcaster.py
"""
Live order updates over Server-Sent Events.

One OrderBroadcaster instance lives on app.state. Every open stream registers
a Connection for its user; status changes are pushed to all connections of
the order's owner. Delivery is best effort: no queueing for offline users and
no retries.
"""

import asyncio
import json
import logging
import threading
from typing import Awaitable, Callable, Dict, Optional, Set
from uuid import uuid4

logger = logging.getLogger(__name__)

ORDER_STATUS_UPDATE = "order_status_update"
CONNECTED = "connected"
HEARTBEAT_FRAME = ": heartbeat\n\n"


def format_sse(event: str, data: dict) -> str:
    payload = json.dumps(data, default=str)
    return f"event: {event}\ndata: {payload}\n\n"


class ConnectionClosed(Exception):
    pass


class Connection:
    """
    One open stream. Frames are handed to the event loop that serves the
    stream, so push() is safe to call from worker threads.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, max_queue: int = 100):
        self.id = uuid4().hex
        self.closed = False
        self._loop = loop
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue)

    def _on_loop(self) -> bool:
        try:
            return asyncio.get_running_loop() is self._loop
        except RuntimeError:
            return False

    def _put(self, frame: Optional[str]):
        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull:
            # client is not reading, stop feeding it
            logger.warning(f"Order stream {self.id} queue full, closing")
            self.closed = True

    def push(self, frame: str):
        if self.closed:
            raise ConnectionClosed(self.id)

        if self._on_loop():
            if self._queue.full():
                self.closed = True
                raise ConnectionClosed(self.id)
            self._queue.put_nowait(frame)
        else:
            # RuntimeError when the loop is already closed
            self._loop.call_soon_threadsafe(self._put, frame)

    def close(self):
        if self.closed:
            return
        self.closed = True
        try:
            if self._on_loop():
                self._put(None)
            else:
                self._loop.call_soon_threadsafe(self._put, None)
        except RuntimeError:
            logger.debug(f"Order stream {self.id} loop already closed")

    async def next_frame(self, timeout: float) -> Optional[str]:
        """Wait for the next frame. Raises asyncio.TimeoutError when idle."""
        return await asyncio.wait_for(self._queue.get(), timeout=timeout)


class OrderBroadcaster:
    def __init__(self, heartbeat_seconds: float = 30.0, max_queue: int = 100):
        self.heartbeat_seconds = heartbeat_seconds
        self.max_queue = max_queue
        self._lock = threading.Lock()
        self._connections: Dict[str, Set[Connection]] = {}

    def add_connection(self, user_id, connection: Optional[Connection] = None) -> Connection:
        """Register a stream for user_id. Must be called from the loop serving it."""
        if connection is None:
            connection = Connection(asyncio.get_running_loop(), self.max_queue)

        with self._lock:
            self._connections.setdefault(str(user_id), set()).add(connection)

        logger.info(f"Order stream {connection.id} opened for user {user_id}")
        return connection

    def remove_connection(self, user_id, connection: Connection):
        connection.close()

        with self._lock:
            user_connections = self._connections.get(str(user_id))
            if user_connections is None or connection not in user_connections:
                return
            user_connections.discard(connection)
            if not user_connections:
                del self._connections[str(user_id)]

        logger.info(f"Order stream {connection.id} closed for user {user_id}")

    def connection_count(self, user_id=None) -> int:
        with self._lock:
            if user_id is not None:
                return len(self._connections.get(str(user_id), ()))
            return sum(len(c) for c in self._connections.values())

    def send_to_user(self, user_id, event: str, payload: dict) -> int:
        """
        Push an event to every open stream of user_id.

        Never raises. Returns the number of connections the frame was handed to;
        zero when the user has no open stream, in which case the event is dropped.
        """
        with self._lock:
            connections = list(self._connections.get(str(user_id), ()))

        if not connections:
            logger.debug(f"No open order stream for user {user_id}, dropping {event}")
            return 0

        frame = format_sse(event, payload)
        delivered = 0

        for connection in connections:
            try:
                connection.push(frame)
                delivered += 1
            except (ConnectionClosed, RuntimeError) as e:
                logger.warning(f"Order stream {connection.id} for user {user_id} failed: {e!r}")
                self.remove_connection(user_id, connection)

        return delivered

    async def stream(
        self,
        user_id,
        is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    ):
        """
        Async generator of SSE frames for one client: a connected event,
        then status updates, with heartbeat comments while idle.
        """
        connection = self.add_connection(user_id)
        try:
            yield format_sse(CONNECTED, {"message": "Connected to order updates"})

            while not connection.closed:
                if is_disconnected is not None and await is_disconnected():
                    break

                try:
                    frame = await connection.next_frame(self.heartbeat_seconds)
                except asyncio.TimeoutError:
                    yield HEARTBEAT_FRAME
                    continue

                if frame is None:
                    break
                yield frame
        finally:
            self.remove_connection(user_id, connection)

# marketplace/realtime.py
import logging
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger("adspace_backend")


class ChatHub:
    """
    In-process room registry for chat websockets.

    One room per conversation id. A socket can sit in several rooms; sockets
    that fail on send are dropped from every room.
    """

    def __init__(self) -> None:
        # room -> set of sockets
        self._rooms: dict[str, set[Any]] = {}

    def join(self, room: str, socket: WebSocket) -> None:
        self._rooms.setdefault(str(room), set()).add(socket)

    def leave(self, room: str, socket: WebSocket) -> None:
        members = self._rooms.get(str(room))
        if not members:
            return
        members.discard(socket)
        if not members:
            del self._rooms[str(room)]

    def disconnect(self, socket: WebSocket) -> None:
        for room in list(self._rooms):
            self.leave(room, socket)

    def members(self, room: str) -> int:
        return len(self._rooms.get(str(room), ()))

    async def emit(self, room: str, event: str, data: Any) -> int:
        """Send {"event", "data"} to everyone in the room; returns deliveries."""
        delivered = 0
        dead = []
        for socket in list(self._rooms.get(str(room), ())):
            try:
                await socket.send_json({"event": event, "data": data})
                delivered += 1
            except Exception as e:
                logger.info("Dropping chat socket after failed send: %s", e)
                dead.append(socket)
        for socket in dead:
            self.disconnect(socket)
        return delivered

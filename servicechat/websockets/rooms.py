from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ChatRoomManager:
    """Booking rooms: which connections receive broadcasts for a booking."""

    def __init__(self) -> None:
        self._rooms: Dict[str, Set[WebSocket]] = {}
        self._memberships: Dict[WebSocket, Set[str]] = {}
        self._lock = asyncio.Lock()

    async def join(self, booking_id: str, websocket: WebSocket) -> None:
        async with self._lock:
            self._rooms.setdefault(booking_id, set()).add(websocket)
            self._memberships.setdefault(websocket, set()).add(booking_id)

    async def leave(self, booking_id: str, websocket: WebSocket) -> None:
        async with self._lock:
            self._discard(booking_id, websocket)

    async def leave_all(self, websocket: WebSocket) -> Set[str]:
        async with self._lock:
            booking_ids = self._memberships.pop(websocket, set())
            for booking_id in booking_ids:
                self._discard_member(booking_id, websocket)
            return booking_ids

    def _discard(self, booking_id: str, websocket: WebSocket) -> None:
        self._discard_member(booking_id, websocket)
        rooms = self._memberships.get(websocket)
        if rooms is None:
            return
        rooms.discard(booking_id)
        if not rooms:
            self._memberships.pop(websocket, None)

    def _discard_member(self, booking_id: str, websocket: WebSocket) -> None:
        members = self._rooms.get(booking_id)
        if not members:
            return
        members.discard(websocket)
        if not members:
            self._rooms.pop(booking_id, None)

    async def is_member(self, booking_id: str, websocket: WebSocket) -> bool:
        async with self._lock:
            return websocket in self._rooms.get(booking_id, ())

    async def members(self, booking_id: str) -> List[WebSocket]:
        async with self._lock:
            members = self._rooms.get(booking_id)
            return list(members) if members else []

    async def rooms_of(self, websocket: WebSocket) -> Set[str]:
        async with self._lock:
            return set(self._memberships.get(websocket, ()))

    async def broadcast(self, booking_id: str, event: str, data: Any) -> int:
        """Send ``event`` to every member of the room; returns deliveries."""
        delivered = 0
        for websocket in await self.members(booking_id):
            if await self._safe_send(websocket, event, data):
                delivered += 1
        return delivered

    async def _safe_send(self, websocket: WebSocket, event: str, data: Any) -> bool:
        try:
            await websocket.send_json({"event": event, "data": data})
            return True
        except Exception:  # noqa: BLE001
            logger.warning("Dropping connection after failed send", exc_info=True)
            await self.leave_all(websocket)
            return False

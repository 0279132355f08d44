from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from servicechat.core.errors import (
    CHAT_UNAVAILABLE,
    AccessDenied,
    AppError,
    BookingNotFound,
    NotInRoom,
    PersistenceFailure,
)
from servicechat.schemas.chat import JoinChatPayload, SendMessagePayload
from servicechat.services.booking import BookingService
from servicechat.services.chat import ChatService, serialize_history
from servicechat.websockets.rooms import ChatRoomManager

logger = logging.getLogger(__name__)

router = APIRouter()

INVALID_PAYLOAD = "Invalid payload."
UNSUPPORTED_EVENT = "Unsupported event."
EMPTY_MESSAGE = "Message text is required."

Handler = Callable[[WebSocket, Any], Awaitable[None]]


class ChatGateway:
    """Routes chat events from client connections to the booking chat store.

    Inbound and outbound frames share the envelope ``{"event": ..., "data": ...}``.
    Failures never leave a handler: each one becomes an ``error`` frame sent to
    the calling connection only.

    With ``strict`` set, ``getMessages`` is gated on the booking status like
    ``joinChat`` and ``sendMessage``, and a connection must have joined the
    booking room before it may send.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        rooms: Optional[ChatRoomManager] = None,
        *,
        strict: bool = True,
    ) -> None:
        self.session_factory = session_factory
        self.rooms = rooms or ChatRoomManager()
        self.strict = strict
        self._handlers: Dict[str, Handler] = {
            "joinChat": self.join_chat,
            "sendMessage": self.send_message,
            "getMessages": self.get_messages,
        }

    async def dispatch(self, websocket: WebSocket, raw: str) -> None:
        try:
            frame = json.loads(raw)
        except ValueError:
            await self.emit(websocket, "error", INVALID_PAYLOAD)
            return
        event = frame.get("event") if isinstance(frame, dict) else None
        handler = self._handlers.get(event) if isinstance(event, str) else None
        if handler is None:
            await self.emit(websocket, "error", UNSUPPORTED_EVENT)
            return

        try:
            await handler(websocket, frame.get("data"))
        except ValidationError:
            await self.emit(websocket, "error", INVALID_PAYLOAD)
        except (BookingNotFound, AccessDenied) as err:
            logger.info(
                "Chat refused: %s",
                type(err).__name__,
                extra={"operation": event, "booking_id": err.booking_id},
            )
            await self.emit(websocket, "error", CHAT_UNAVAILABLE)
        except AppError as err:
            await self.emit(websocket, "error", err.message)
        except SQLAlchemyError:
            logger.exception("Database error in chat handler", extra={"operation": event})
            await self.emit(websocket, "error", PersistenceFailure().message)

    async def join_chat(self, websocket: WebSocket, data: Any) -> None:
        payload = JoinChatPayload.model_validate(data)
        async with self.session_factory() as db:
            await BookingService(db).ensure_chat_access(payload.booking_id)
        await self.rooms.join(payload.booking_id, websocket)
        logger.info(
            "User %s joined chat",
            payload.user_id,
            extra={"operation": "joinChat", "booking_id": payload.booking_id},
        )

    async def send_message(self, websocket: WebSocket, data: Any) -> None:
        payload = SendMessagePayload.model_validate(data)
        if not payload.message.strip():
            raise AppError(EMPTY_MESSAGE)
        booking_id = payload.booking_id

        async with self.session_factory() as db:
            await BookingService(db).ensure_chat_access(booking_id)
            if self.strict and not await self.rooms.is_member(booking_id, websocket):
                raise NotInRoom(booking_id)
            history = await ChatService(db).append_message(
                booking_id,
                sender_id=payload.sender_id,
                receiver_id=payload.receiver_id,
                text=payload.message,
            )
            messages = serialize_history(history)

        delivered = await self.rooms.broadcast(booking_id, "receiveMessage", messages)
        logger.info(
            "Message from %s stored, history sent to %d connection(s)",
            payload.sender_id,
            delivered,
            extra={"operation": "sendMessage", "booking_id": booking_id},
        )

    async def get_messages(self, websocket: WebSocket, data: Any) -> None:
        booking_id = _booking_id_from(data)
        async with self.session_factory() as db:
            if self.strict:
                await BookingService(db).ensure_chat_access(booking_id)
            history = await ChatService(db).get_history(booking_id)
            messages = serialize_history(history)
        await self.emit(websocket, "receiveMessage", messages)

    async def disconnect(self, websocket: WebSocket) -> None:
        booking_ids = await self.rooms.leave_all(websocket)
        for booking_id in booking_ids:
            logger.info(
                "Connection left chat room",
                extra={"operation": "disconnect", "booking_id": booking_id},
            )

    async def close_room(self, booking_id: str) -> int:
        """Evict every member once the booking's chat is no longer open."""
        members = await self.rooms.members(booking_id)
        for websocket in members:
            await self.rooms.leave(booking_id, websocket)
        if members:
            logger.info(
                "Chat room closed, %d connection(s) evicted",
                len(members),
                extra={"operation": "closeRoom", "booking_id": booking_id},
            )
        return len(members)

    async def emit(self, websocket: WebSocket, event: str, data: Any) -> None:
        await websocket.send_json({"event": event, "data": data})


def _booking_id_from(data: Any) -> str:
    # getMessages carries a bare booking id; an object with bookingId is accepted too
    if isinstance(data, dict):
        data = data.get("bookingId")
    if isinstance(data, bool) or not isinstance(data, (str, int)) or data == "":
        raise AppError(INVALID_PAYLOAD)
    return str(data)


@router.websocket("/ws/chat")
async def chat_websocket(websocket: WebSocket) -> None:
    gateway: ChatGateway = websocket.app.state.chat_gateway
    await websocket.accept()
    logger.info("Chat client connected: %s", websocket.client)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            raw = message.get("text")
            if raw is None:
                # binary frames are not part of the protocol
                await gateway.emit(websocket, "error", INVALID_PAYLOAD)
                continue
            await gateway.dispatch(websocket, raw)
    except WebSocketDisconnect:
        logger.info("Chat client disconnected: %s", websocket.client)
    except Exception:  # noqa: BLE001
        logger.exception("Chat websocket error")
        try:
            await websocket.close(code=1011)
        except Exception:  # noqa: BLE001
            pass
    finally:
        await gateway.disconnect(websocket)

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Dict, List, Optional

from sqlalchemy import asc, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from servicechat.core.errors import PersistenceFailure
from servicechat.models.chat_message import ChatMessage, ChatSession

logger = logging.getLogger(__name__)


class BookingLocks:
    """Per-booking ``asyncio.Lock`` table; entries are dropped once unused."""

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._holders: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, booking_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(booking_id, asyncio.Lock())
        self._holders[booking_id] = self._holders.get(booking_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[booking_id] -= 1
            if not self._holders[booking_id]:
                del self._holders[booking_id]
                del self._locks[booking_id]

    def __len__(self) -> int:
        return len(self._locks)


# Shared by every ChatService so appends for one booking run one at a time
booking_locks = BookingLocks()


class ChatService:
    """Per-booking message log stored in the database.

    Each message is its own row, so an append is a single INSERT rather than a
    read-modify-write of the whole history.
    """

    def __init__(self, db: AsyncSession, locks: Optional[BookingLocks] = None) -> None:
        self.db = db
        self.locks = locks or booking_locks

    async def get_session(self, booking_id: str) -> Optional[ChatSession]:
        result = await self.db.execute(
            select(ChatSession).where(ChatSession.booking_id == booking_id)
        )
        return result.scalar_one_or_none()

    async def _get_or_create_session(self, booking_id: str) -> ChatSession:
        session = await self.get_session(booking_id)
        if session is not None:
            return session
        session = ChatSession(booking_id=booking_id)
        self.db.add(session)
        try:
            await self.db.commit()
        except IntegrityError:
            # Another process created it first; booking_id is unique.
            await self.db.rollback()
            session = await self.get_session(booking_id)
            if session is None:
                raise
            return session
        logger.info(
            "Chat session created",
            extra={"operation": "createChatSession", "booking_id": booking_id},
        )
        return session

    async def append_message(
        self,
        booking_id: str,
        *,
        sender_id: str,
        receiver_id: str,
        text: str,
    ) -> List[ChatMessage]:
        """Append one message and return the full history, oldest first.

        The row is committed before this returns, so callers may broadcast
        the result straight away.
        """
        try:
            async with self.locks.hold(booking_id):
                session = await self._get_or_create_session(booking_id)
                now = datetime.utcnow()
                message = ChatMessage(
                    session_id=session.id,
                    sender_id=sender_id,
                    receiver_id=receiver_id,
                    text=text,
                    timestamp=now,
                )
                session.updated_at = now
                self.db.add(message)
                await self.db.commit()
                return await self._list_for_session(session.id)
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.exception(
                "Failed to append chat message",
                extra={"operation": "sendMessage", "booking_id": booking_id},
            )
            raise PersistenceFailure() from exc

    async def get_history(self, booking_id: str) -> List[ChatMessage]:
        try:
            session = await self.get_session(booking_id)
            if session is None:
                return []
            return await self._list_for_session(session.id)
        except SQLAlchemyError as exc:
            logger.exception(
                "Failed to load chat history",
                extra={"operation": "getMessages", "booking_id": booking_id},
            )
            raise PersistenceFailure() from exc

    async def _list_for_session(self, session_id: int) -> List[ChatMessage]:
        result = await self.db.execute(
            select(ChatMessage)
            .where(ChatMessage.session_id == session_id)
            .order_by(asc(ChatMessage.id))
        )
        return list(result.scalars())


def serialize_message(message: ChatMessage) -> dict:
    return {
        "senderId": message.sender_id,
        "receiverId": message.receiver_id,
        "text": message.text,
        "timestamp": message.timestamp.isoformat(),
    }


def serialize_history(messages: List[ChatMessage]) -> List[dict]:
    return [serialize_message(message) for message in messages]

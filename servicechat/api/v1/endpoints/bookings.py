from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from servicechat.core.database import get_db
from servicechat.core.dependencies import require_admin
from servicechat.schemas.booking import BookingCreate, BookingResponse, BookingStatus, BookingStatusUpdate
from servicechat.schemas.chat import ChatHistoryResponse, ChatMessageResponse
from servicechat.services.booking import BookingService
from servicechat.services.chat import ChatService

router = APIRouter(dependencies=[Depends(require_admin)])


@router.get("", response_model=List[BookingResponse])
async def list_bookings(
    user_id: Optional[str] = Query(default=None, alias="userId"),
    booking_status: Optional[BookingStatus] = Query(default=None, alias="status"),
    db: AsyncSession = Depends(get_db),
):
    """Bookings, newest first, optionally filtered by user and status."""
    return await BookingService(db).list_bookings(user_id=user_id, status=booking_status)


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    db: AsyncSession = Depends(get_db),
):
    return await BookingService(db).create(booking_data)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: str,
    db: AsyncSession = Depends(get_db),
):
    return await BookingService(db).get_or_404(booking_id)


@router.patch("/{booking_id}/status", response_model=BookingResponse)
async def update_booking_status(
    booking_id: str,
    update: BookingStatusUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Accepting a booking assigns the partner and opens its chat; any other status closes it."""
    service = BookingService(db)
    booking = await service.get_or_404(booking_id)
    booking = await service.update_status(
        booking, update.status, partner_id=update.partnerId, reason=update.reason
    )
    if not booking.chat_open:
        await request.app.state.chat_gateway.close_room(booking.id)
    return booking


@router.post("/{booking_id}/complete", response_model=BookingResponse)
async def complete_booking(
    booking_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    service = BookingService(db)
    booking = await service.get_or_404(booking_id)
    booking = await service.complete(booking)
    await request.app.state.chat_gateway.close_room(booking.id)
    return booking


@router.get("/{booking_id}/chat", response_model=ChatHistoryResponse)
async def get_booking_chat(
    booking_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Full chat history of a booking, regardless of its status."""
    await BookingService(db).get_or_404(booking_id)
    messages = await ChatService(db).get_history(booking_id)
    return ChatHistoryResponse(
        booking_id=booking_id,
        messages=[ChatMessageResponse.model_validate(m) for m in messages],
    )

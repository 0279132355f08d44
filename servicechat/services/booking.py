import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from servicechat.core.errors import AccessDenied, AppError, BookingNotFound, InvalidBookingState
from servicechat.models.booking import CHAT_STATUS, Booking
from servicechat.schemas.booking import BookingCreate

logger = logging.getLogger(__name__)


class BookingService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, booking_id: str) -> Optional[Booking]:
        result = await self.db.execute(select(Booking).where(Booking.id == str(booking_id)))
        return result.scalar_one_or_none()

    async def get_or_404(self, booking_id: str) -> Booking:
        booking = await self.get(booking_id)
        if booking is None:
            raise BookingNotFound(booking_id)
        return booking

    async def ensure_chat_access(self, booking_id: str) -> Booking:
        """Return the booking if its chat is open.

        Raises ``BookingNotFound`` for unknown ids and ``AccessDenied`` when the
        booking is in any status other than ``accepted``.
        """
        booking = await self.get_or_404(booking_id)
        if booking.status != CHAT_STATUS:
            raise AccessDenied(booking_id, booking.status)
        return booking

    async def list_bookings(self, user_id: Optional[str] = None, status: Optional[str] = None) -> List[Booking]:
        stmt = select(Booking).order_by(Booking.created_at.desc())
        if user_id is not None:
            stmt = stmt.where(Booking.user_id == user_id)
        if status is not None:
            stmt = stmt.where(Booking.status == status)
        result = await self.db.execute(stmt)
        return list(result.scalars())

    async def create(self, data: BookingCreate) -> Booking:
        booking = Booking(
            user_id=data.userId,
            sub_service_id=data.subServiceId,
            service_id=data.serviceId,
            category_id=data.categoryId,
            scheduled_date=data.scheduledDate,
            scheduled_time=data.scheduledTime,
            address=data.address,
            landmark=data.landmark,
            pincode=data.pincode,
            amount=data.amount,
            payment_mode=data.paymentMode,
            status="pending",
        )
        if data.id:
            booking.id = data.id
        self.db.add(booking)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise AppError("Booking already exists", 409)
        await self.db.refresh(booking)
        logger.info("Booking created", extra={"operation": "createBooking", "booking_id": booking.id})
        return booking

    async def update_status(
        self,
        booking: Booking,
        status: str,
        *,
        partner_id: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> Booking:
        now = datetime.utcnow()
        if status == "accepted":
            if not partner_id and not booking.partner_id:
                raise InvalidBookingState("partnerId is required to accept a booking")
            if partner_id:
                booking.partner_id = partner_id
            booking.accepted_at = now
        elif status == "cancelled":
            booking.cancellation_reason = reason
            booking.cancellation_time = now
        elif status == "completed":
            booking.completed_at = now

        previous = booking.status
        booking.status = status
        await self.db.commit()
        await self.db.refresh(booking)
        logger.info(
            "Booking status %s -> %s",
            previous,
            status,
            extra={"operation": "updateBookingStatus", "booking_id": booking.id},
        )
        return booking

    async def complete(self, booking: Booking) -> Booking:
        if booking.status == "completed":
            raise InvalidBookingState("Booking is already completed")
        if booking.status == "cancelled":
            raise InvalidBookingState("Cannot complete a cancelled booking")
        return await self.update_status(booking, "completed")

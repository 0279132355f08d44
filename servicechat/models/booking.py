import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Float, Index
from sqlalchemy.orm import relationship
from servicechat.core.database import Base

BOOKING_STATUSES = (
    "pending",
    "confirmed",
    "in_progress",
    "completed",
    "cancelled",
    "accepted",
    "rejected",
    "paused",
)
PAYMENT_MODES = ("credit card", "cash", "paypal", "bank transfer")
PAYMENT_STATUSES = ("pending", "completed", "failed", "refunded")

# Only this status opens the booking chat
CHAT_STATUS = "accepted"


def generate_booking_id() -> str:
    return uuid.uuid4().hex[:24]


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String(64), primary_key=True, default=generate_booking_id)
    user_id = Column(String(64), nullable=False)
    partner_id = Column(String(64), nullable=True, index=True)  # assigned when the partner accepts

    # Service catalogue
    sub_service_id = Column(String(64), nullable=True, index=True)
    service_id = Column(String(64), nullable=True)
    category_id = Column(String(64), nullable=True)

    # Schedule and location
    scheduled_date = Column(DateTime, nullable=False, index=True)
    scheduled_time = Column(String, nullable=False)
    address = Column(String, nullable=False)
    landmark = Column(String, default="")
    pincode = Column(String, nullable=True)

    # Payment
    amount = Column(Float, nullable=False)
    payment_mode = Column(String, nullable=False)
    payment_status = Column(String, default="pending")

    status = Column(String, default="pending", index=True)
    cancellation_reason = Column(String, nullable=True)
    cancellation_time = Column(DateTime, nullable=True)

    # Timestamps
    accepted_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    chat_session = relationship("ChatSession", back_populates="booking", uselist=False)

    __table_args__ = (Index("ix_bookings_user_status", "user_id", "status"),)

    @property
    def chat_open(self) -> bool:
        return self.status == CHAT_STATUS

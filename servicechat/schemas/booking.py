from pydantic import BaseModel, Field
from datetime import datetime
from typing import Literal, Optional

BookingStatus = Literal[
    "pending", "confirmed", "in_progress", "completed", "cancelled", "accepted", "rejected", "paused"
]
PaymentMode = Literal["credit card", "cash", "paypal", "bank transfer"]


class BookingCreate(BaseModel):
    id: Optional[str] = None
    userId: str
    subServiceId: Optional[str] = None
    serviceId: Optional[str] = None
    categoryId: Optional[str] = None
    scheduledDate: datetime
    scheduledTime: str
    address: str
    landmark: str = ""
    pincode: Optional[str] = None
    amount: float = Field(ge=0)
    paymentMode: PaymentMode


class BookingStatusUpdate(BaseModel):
    status: BookingStatus
    partnerId: Optional[str] = None
    reason: Optional[str] = None


class BookingResponse(BaseModel):
    id: str
    user_id: str
    partner_id: Optional[str] = None
    sub_service_id: Optional[str] = None
    service_id: Optional[str] = None
    category_id: Optional[str] = None
    scheduled_date: datetime
    scheduled_time: str
    address: str
    landmark: Optional[str] = None
    pincode: Optional[str] = None
    amount: float
    payment_mode: str
    payment_status: str
    status: str
    cancellation_reason: Optional[str] = None
    cancellation_time: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

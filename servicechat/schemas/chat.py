from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class JoinChatPayload(BaseModel):
    booking_id: str = Field(alias="bookingId")
    user_id: Optional[str] = Field(default=None, alias="userId")

    model_config = {"populate_by_name": True, "coerce_numbers_to_str": True}


class SendMessagePayload(BaseModel):
    booking_id: str = Field(alias="bookingId")
    sender_id: str = Field(alias="senderId")
    receiver_id: str = Field(alias="receiverId")
    message: str

    model_config = {"populate_by_name": True, "coerce_numbers_to_str": True}


class ChatMessageResponse(BaseModel):
    sender_id: str = Field(alias="senderId")
    receiver_id: str = Field(alias="receiverId")
    text: str
    timestamp: datetime

    model_config = {
        "from_attributes": True,
        "populate_by_name": True,
    }


class ChatHistoryResponse(BaseModel):
    booking_id: str = Field(alias="bookingId")
    messages: List[ChatMessageResponse]

    model_config = {"populate_by_name": True}

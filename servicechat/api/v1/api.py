from fastapi import APIRouter
from servicechat.api.v1.endpoints import bookings

api_router = APIRouter()
api_router.include_router(bookings.router, prefix="/bookings", tags=["bookings"])

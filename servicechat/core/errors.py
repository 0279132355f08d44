from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

CHAT_UNAVAILABLE = "Chat is only available for accepted bookings."


class AppError(Exception):
    status_code = 400

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class BookingNotFound(AppError):
    status_code = 404

    def __init__(self, booking_id):
        super().__init__("Booking not found")
        self.booking_id = booking_id


class AccessDenied(AppError):
    """Booking exists but its status does not allow chatting."""

    status_code = 403

    def __init__(self, booking_id, status):
        super().__init__(CHAT_UNAVAILABLE)
        self.booking_id = booking_id
        self.status = status


class NotInRoom(AppError):
    status_code = 403

    def __init__(self, booking_id):
        super().__init__("Join the chat before sending messages.")
        self.booking_id = booking_id


class InvalidBookingState(AppError):
    status_code = 400


class PersistenceFailure(AppError):
    status_code = 500

    def __init__(self, message="Something went wrong. Please try again."):
        super().__init__(message)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def handle_app_error(_request: Request, err: AppError) -> JSONResponse:
        return JSONResponse(status_code=err.status_code, content={"detail": err.message})

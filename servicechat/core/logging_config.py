import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Context fields attached through ``extra=`` by the chat gateway and services
CONTEXT_FIELDS = ("operation", "booking_id")


class ContextFormatter(logging.Formatter):
    """Appends ``key=value`` pairs for any context fields set on the record."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = [
            f"{field}={getattr(record, field)}"
            for field in CONTEXT_FIELDS
            if getattr(record, field, None) is not None
        ]
        if context:
            return f"{message} | {' '.join(context)}"
        return message


def configure_logging(level: str = "INFO", echo_sql: bool = False) -> None:
    """No-op for the root logger if something (uvicorn, pytest) configured it first."""
    handler = logging.StreamHandler()
    handler.setFormatter(ContextFormatter(LOG_FORMAT))
    logging.basicConfig(level=level.upper(), handlers=[handler])

    # SQL echo is noisy; only keep it when explicitly requested
    logging.getLogger("sqlalchemy.engine").disabled = not echo_sql

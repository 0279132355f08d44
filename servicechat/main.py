import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncEngine

from servicechat.api.v1.api import api_router
from servicechat.core import database
from servicechat.core.config import settings
from servicechat.core.errors import register_error_handlers
from servicechat.core.init_db import init_db
from servicechat.core.logging_config import configure_logging
from servicechat.websockets.chat_ws import ChatGateway, router as chat_ws_router

logger = logging.getLogger(__name__)


def create_app(engine: Optional[AsyncEngine] = None) -> FastAPI:
    """Build the API; ``engine`` defaults to the one configured by DATABASE_URL."""
    configure_logging(settings.LOG_LEVEL, echo_sql=settings.DATABASE_ECHO)

    if engine is None:
        engine = database.engine
        session_factory = database.AsyncSessionLocal
    else:
        session_factory = database.make_session_factory(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await init_db(engine)
        logger.info("Database ready: %s", engine.url.render_as_string(hide_password=True))
        yield

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        lifespan=lifespan,
    )
    app.state.session_factory = session_factory
    app.state.chat_gateway = ChatGateway(session_factory, strict=settings.CHAT_STRICT_ACCESS)

    # CORS
    if settings.BACKEND_CORS_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=[str(origin) for origin in settings.BACKEND_CORS_ORIGINS],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    register_error_handlers(app)

    app.include_router(api_router, prefix=settings.API_V1_STR)
    # Booking chat websocket
    app.include_router(chat_ws_router)

    @app.get("/health", tags=["health"])
    async def health() -> dict:
        return {"status": "ok"}

    return app


app = create_app()

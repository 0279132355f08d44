from pathlib import Path
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from servicechat.core.database import Base, engine as default_engine

# Import models so they register in metadata before create_all
from servicechat.models import admin  # noqa: F401
from servicechat.models import booking  # noqa: F401
from servicechat.models import chat_message  # noqa: F401


async def init_db(engine: Optional[AsyncEngine] = None) -> None:
    """Create all tables; makes sure the SQLite file's directory exists."""
    if engine is None:
        engine = default_engine
    database = engine.url.database
    if engine.url.get_backend_name() == "sqlite" and database and database != ":memory:":
        Path(database).parent.mkdir(parents=True, exist_ok=True)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

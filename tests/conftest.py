from datetime import datetime
from pathlib import Path

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, func, select
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import NullPool

from servicechat.core.database import Base, make_session_factory
from servicechat.core.init_db import init_db
from servicechat.core.security import create_access_token
from servicechat.main import create_app
from servicechat.models.admin import Admin
from servicechat.models.booking import Booking
from servicechat.models.chat_message import ChatMessage, ChatSession

ADMIN_ID = "admin-1"


class SyncDB:
    """Synchronous handle on the test database for seeding and assertions."""

    def __init__(self, path: Path):
        self.engine = create_engine(f"sqlite:///{path}")
        Base.metadata.create_all(self.engine)

    def add_booking(self, booking_id: str, status: str = "accepted", **fields) -> None:
        values = dict(
            id=booking_id,
            user_id="userA",
            partner_id="partnerX",
            scheduled_date=datetime(2026, 10, 20, 9, 0),
            scheduled_time="09:00",
            address="12 Market Road",
            amount=450.0,
            payment_mode="cash",
            status=status,
        )
        values.update(fields)
        with Session(self.engine) as session:
            session.add(Booking(**values))
            session.commit()

    def add_admin(self, admin_id: str = ADMIN_ID) -> None:
        with Session(self.engine) as session:
            session.add(Admin(id=admin_id, email=f"{admin_id}@example.com", name="Ops"))
            session.commit()

    def count_sessions(self, booking_id: str) -> int:
        with Session(self.engine) as session:
            return session.scalar(
                select(func.count()).select_from(ChatSession).where(ChatSession.booking_id == booking_id)
            )

    def count_messages(self) -> int:
        with Session(self.engine) as session:
            return session.scalar(select(func.count()).select_from(ChatMessage))

    def booking_status(self, booking_id: str) -> str:
        with Session(self.engine) as session:
            return session.get(Booking, booking_id).status


@pytest.fixture
def db_path(tmp_path) -> Path:
    return tmp_path / "servicechat-test.db"


@pytest.fixture
def sync_db(db_path) -> SyncDB:
    db = SyncDB(db_path)
    yield db
    db.engine.dispose()


@pytest.fixture
def app(db_path, sync_db):
    # NullPool: TestClient runs the app on its own event loop
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)
    return create_app(engine)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_headers(sync_db) -> dict:
    sync_db.add_admin()
    token = create_access_token({"adminId": ADMIN_ID})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")
    await init_db(engine)
    yield make_session_factory(engine)
    await engine.dispose()


@pytest_asyncio.fixture
async def accepted_booking(session_factory) -> str:
    async with session_factory() as db:
        db.add(
            Booking(
                id="B1",
                user_id="userA",
                partner_id="partnerX",
                scheduled_date=datetime(2026, 10, 20, 9, 0),
                scheduled_time="09:00",
                address="12 Market Road",
                amount=450.0,
                payment_mode="cash",
                status="accepted",
            )
        )
        await db.commit()
    return "B1"

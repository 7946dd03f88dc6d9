import os
from typing import AsyncGenerator, Callable

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Settings are read at import time by libs.db; give tests a database before
# anything imports them.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./orders-test.db")
os.environ.setdefault("ORDER_EVENTS_WEBHOOK_URL", "")

from libs.auth.dependencies import get_current_user  # noqa: E402
from libs.auth.models import AuthUser  # noqa: E402
from libs.common.config import get_settings  # noqa: E402
from libs.db.base import Base  # noqa: E402
from libs.db.session import get_async_db  # noqa: E402
from services.orders_service import models as _order_models  # noqa: E402,F401
from services.orders_service.services.notifications import (  # noqa: E402
    get_order_event_emitter,
)
from tests.factories import RecordingEmitter  # noqa: E402

get_settings.cache_clear()
settings = get_settings()


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """
    A fresh database per test.

    TEST_DATABASE_URL points the suite at a real server; otherwise each test
    gets its own SQLite file so several connections can race on it.
    """
    db_url = os.environ.get("TEST_DATABASE_URL") or (
        f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}"
    )
    connect_args = {"timeout": 30} if db_url.startswith("sqlite") else {}
    engine = create_async_engine(db_url, future=True, connect_args=connect_args)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    session = session_factory()
    try:
        yield session
    finally:
        await session.close()


@pytest.fixture
def emitter() -> RecordingEmitter:
    return RecordingEmitter()


@pytest_asyncio.fixture
async def client(session_factory, emitter) -> AsyncGenerator[AsyncClient, None]:
    """
    Yield an AsyncClient for the orders app.

    Every request gets its own session, as in production. Authentication is
    left in place; use ``login`` to act as a specific user.
    """
    from services.orders_service.app.main import app

    async def _get_test_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_async_db] = _get_test_db
    app.dependency_overrides[get_order_event_emitter] = lambda: emitter

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def login(client) -> Callable[[AuthUser], None]:
    """Authenticate subsequent requests as ``user``."""
    from services.orders_service.app.main import app

    def _login(user: AuthUser) -> None:
        app.dependency_overrides[get_current_user] = lambda: user

    return _login

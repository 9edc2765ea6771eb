"""Pytest fixtures for the onboarding service tests.

Provides:
- engine: SQLite in-memory engine with the schema created and SAVEPOINT support
- session: Sync SQLAlchemy session the customer data steps run on
- client: Async HTTP client for the FastAPI app, with get_db bound to ``session``
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Generator
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from onboarding.models import Base


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    """In-memory SQLite engine shared by every connection of one test.

    pysqlite starts transactions on its own and breaks SAVEPOINT; the two
    listeners hand transaction control back to SQLAlchemy.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine: Engine) -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


class SyncSessionAdapter:
    """Just enough of ``AsyncSession`` for the routes, backed by a sync Session."""

    def __init__(self, session: Session) -> None:
        self.session = session

    async def run_sync(self, fn: Any, *args: Any, **kwargs: Any) -> Any:
        return fn(self.session, *args, **kwargs)

    async def get(self, model: Any, ident: Any) -> Any:
        return self.session.get(model, ident)

    async def commit(self) -> None:
        self.session.commit()

    async def rollback(self) -> None:
        self.session.rollback()


@pytest_asyncio.fixture
async def client(session: Session) -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP client bound to the FastAPI app.

    The app's get_db dependency is replaced so every request runs on the
    test's SQLite session.
    """
    from onboarding.database import get_db
    from onboarding.main import app

    adapter = SyncSessionAdapter(session)

    async def override_get_db() -> AsyncGenerator[SyncSessionAdapter, None]:
        try:
            yield adapter
            await adapter.commit()
        except Exception:
            await adapter.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()

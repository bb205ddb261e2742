"""
Pytest fixtures for the storestock test suite.

Provides:
- A fresh SQLite database (aiosqlite) per test, schema created from the models
- Demo locations for one business
- Helpers to seed stock through the transfer orchestrator
- An httpx client bound to the FastAPI app with the DB dependency overridden

Async tests run on the anyio pytest plugin (asyncio backend).
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./storestock-test.db")
os.environ["STOCK_CACHE_ENABLED"] = "false"
os.environ["TRANSFER_MAX_ATTEMPTS"] = "3"

from uuid import UUID, uuid4

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import storestock.models  # noqa: F401
from storestock.db.base import Base
from storestock.db.session import get_db
from storestock.main import app
from storestock.models.location import LocationKind
from storestock.schemas.transfer import TransferLine
from storestock.services.location_service import LocationService
from storestock.services.transfer_service import TransferService


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'storestock.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def business_id() -> UUID:
    return uuid4()


@pytest.fixture
def product_id() -> UUID:
    return uuid4()


@pytest.fixture
async def locations(session_maker, business_id) -> dict[str, UUID]:
    """Main (primary store), Retail (retail store), Warehouse. Values are location ids."""
    specs = [
        ("MAIN", "Main", LocationKind.PRIMARY_STORE),
        ("RETAIL", "Retail", LocationKind.RETAIL_STORE),
        ("WH", "Warehouse", LocationKind.WAREHOUSE),
    ]
    ids = {}
    async with session_maker() as session:
        for code, name, kind in specs:
            loc = await LocationService.create_location(session, business_id, code, name, kind=kind)
            ids[code] = loc.id
        await session.commit()
    return ids


@pytest.fixture
def seed(session_maker, business_id):
    """seed(location_id, {product_id: qty}) -> initial stock through the orchestrator."""

    async def _seed(location_id: UUID, quantities: dict[UUID, int]):
        async with session_maker() as session:
            return await TransferService.record_initial_stock(
                session, business_id, location_id,
                [TransferLine(product_id=pid, quantity=qty) for pid, qty in quantities.items()],
            )

    return _seed


@pytest.fixture
async def client(session_maker):
    async def _get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()

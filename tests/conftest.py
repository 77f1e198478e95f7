# tests/conftest.py
import os
from collections.abc import Callable

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient

# ==== 1) DSN: TEST_DATABASE_URL (Postgres) or in-memory SQLite ====
load_dotenv(".env.test", override=False)
DB_URL = os.getenv("TEST_DATABASE_URL") or "sqlite+aiosqlite:///:memory:"
# アプリ側も同じDSNを見る（import より前に設定する）
os.environ["DATABASE_URL"] = DB_URL
os.environ["APP_ENV"] = "test"
os.environ.setdefault("LOG_FORMAT", "json")

from coffee_finder import db  # noqa: E402
from coffee_finder.api.deps import get_overpass_client  # noqa: E402
from coffee_finder.core.config import Settings, get_settings  # noqa: E402
from coffee_finder.infra.unit_of_work import SqlAlchemyUnitOfWork  # noqa: E402
from coffee_finder.main import create_app  # noqa: E402
from coffee_finder.models import Base  # noqa: E402
from coffee_finder.services.shop_store import ShopStore  # noqa: E402
from tests.factories import USER_LAT, USER_LON, OverpassStub  # noqa: E402


@pytest.fixture
def overpass() -> OverpassStub:
    return OverpassStub()


# ==== 2) Engine / Schema ====
@pytest_asyncio.fixture(scope="function")
async def engine():
    eng = db.configure_engine(DB_URL)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield eng
    finally:
        await eng.dispose()


@pytest.fixture
def uow_factory(engine) -> Callable[[], SqlAlchemyUnitOfWork]:
    return lambda: SqlAlchemyUnitOfWork(db.SessionLocal)


@pytest.fixture
def shop_store(uow_factory) -> ShopStore:
    return ShopStore(uow_factory)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url=DB_URL,
        app_env="test",
        geolocator="static",
        default_lat=USER_LAT,
        default_lon=USER_LON,
        shell_cache_enabled=False,
    )


# ==== 3) FastAPI 依存差し替え ====
@pytest_asyncio.fixture
async def app_client(engine, settings, overpass):
    app = create_app(settings)
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_overpass_client] = overpass.client
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()

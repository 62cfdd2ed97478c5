import sys
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from levelup_api.app import create_app
from levelup_api.db.session import create_schema
from levelup_api.storage import LocalCacheBackend, PersistenceGateway, SeedBackend
from levelup_api.storage.collections import PRODUCTS, USERS


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    await create_schema(engine)

    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def gateway(session_factory, tmp_path):
    """Gateway in offline mode: local cache plus an empty seed directory."""

    return PersistenceGateway(cache=LocalCacheBackend(session_factory), seed=SeedBackend(tmp_path))


@pytest.fixture
def catalog_records():
    """Members and products shared by the order scenarios."""

    users = [
        {
            "id": "user-ana",
            "nombre": "Ana Rojas",
            "correo": "ana@example.com",
            "tipo": "normal",
            "puntos": 500,
            "nivel": "plata",
        },
        {
            "id": "user-duoc",
            "nombre": "Diego Soto",
            "correo": "diego@duocuc.cl",
            "tipo": "normal",
            "puntos": 0,
            "nivel": "bronce",
        },
        {
            "id": "user-new",
            "nombre": "Nuevo Socio",
            "correo": "nuevo@example.com",
            "puntos": 0,
            "nivel": "bronce",
        },
    ]
    products = [
        {
            "codigo": "MS001",
            "nombre": "Mouse Gamer",
            "categoria": "Mouse",
            "precio": 49990,
            "stock": 5,
            "puntos": 300,
            "canjeable": True,
            "imagen": "/img/mouse.png",
        },
        {
            "codigo": "AC001",
            "nombre": "Control Inalámbrico",
            "categoria": "Accesorios",
            "precio": 59990,
            "stock": 2,
            "puntos": None,
            "canjeable": False,
        },
        {
            "codigo": "AU001",
            "nombre": "Audífonos",
            "categoria": "Audio",
            "precio": 10000,
            "stock": 0,
            "puntos": 200,
            "canjeable": True,
        },
        {
            "codigo": "JM001",
            "nombre": "Juego de mesa",
            "categoria": "Juegos",
            "precio": 25000,
            "stock": 10,
            "puntos": None,
            "canjeable": True,
        },
    ]
    return {"users": users, "products": products}


@pytest_asyncio.fixture
async def catalog(gateway, catalog_records):
    await gateway.write(USERS, catalog_records["users"])
    await gateway.write(PRODUCTS, catalog_records["products"])
    return gateway


@pytest_asyncio.fixture
async def api_client(catalog):
    app = create_app(gateway=catalog)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

"""
Shared fixtures: a fresh SQLite file per test, the three core services wired
the way the app wires them, and an HTTP client bound to the FastAPI app.
"""
import pytest
from httpx import ASGITransport, AsyncClient

from app.config import Limits
from app.database import Database
from app.main import app
from app.security import create_access_token
from app.services.ledger import TransactionLedger
from app.services.points import PointsService
from app.services.table_registry import TableRegistry


@pytest.fixture
async def database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'tavoli_test.db'}", echo=False)
    await db.create_tables()
    yield db
    await db.dispose()


@pytest.fixture
def limits():
    return Limits()


@pytest.fixture
def registry(database, limits):
    return TableRegistry(database.session_factory, limits)


@pytest.fixture
def ledger(database, registry, limits):
    return TransactionLedger(database.session_factory, registry, limits)


@pytest.fixture
def points(registry, ledger, limits):
    return PointsService(registry, ledger, limits)


@pytest.fixture
async def client(database):
    app.state.db = database
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http
    app.state.db = None


def auth_headers(user_id: str, role: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id, role)}"}


@pytest.fixture
def admin_headers():
    return auth_headers("admin-1", "admin")


@pytest.fixture
def cashier_headers():
    return auth_headers("cashier-1", "cashier")


@pytest.fixture
def customer_headers():
    return auth_headers("customer-1", "customer")


@pytest.fixture
def make_headers():
    return auth_headers

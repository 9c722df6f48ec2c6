from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from propdesk.database import get_db
from propdesk.main import app
from propdesk.services.auth_service import create_access_token
from propdesk.services.momo_client import get_momo_client


@pytest.fixture
def admin_token():
    return create_access_token(
        user_id="seed-admin-0001",
        role="admin",
        email="admin@propdesk.test",
    )


@pytest.fixture
def auth_headers(admin_token):
    return {"Authorization": f"Bearer {admin_token}"}


@pytest.fixture
def viewer_headers():
    token = create_access_token(
        user_id="seed-viewer-0001", role="viewer", email="viewer@propdesk.test"
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def db_session() -> AsyncMock:
    session = AsyncMock()
    session.flush = AsyncMock()
    session.add = MagicMock()
    result = MagicMock()
    result.scalar_one_or_none.return_value = None
    result.first.return_value = None
    session.execute.return_value = result
    return session


@pytest.fixture
def momo() -> MagicMock:
    client = MagicMock()
    client.request_to_pay = AsyncMock()
    client.create_invoice = AsyncMock()
    client.get_request_to_pay_status = AsyncMock()
    client.get_invoice_status = AsyncMock()
    client.cancel_invoice = AsyncMock(return_value={})
    client.get_account_balance = AsyncMock()
    return client


@pytest_asyncio.fixture
async def client(db_session, momo):
    async def _override_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_db
    app.dependency_overrides[get_momo_client] = lambda: momo
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()

"""
HTTP client fixtures for the billing API.
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from dibnow.billing.db import get_async_session
from dibnow.billing.main import create_app


@pytest.fixture
def app(session_factory):
    app = create_app()

    async def _session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_async_session] = _session
    yield app
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


API = "/api/v1/billing"

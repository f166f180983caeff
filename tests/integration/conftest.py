"""API test fixtures."""

from collections.abc import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from salary_engine.api.app import create_app
from salary_engine.api.dependencies import get_app_settings


@pytest_asyncio.fixture(scope="function")
async def client(settings) -> AsyncGenerator[AsyncClient, None]:
    """Get async HTTP client for API testing."""
    app = create_app()
    app.dependency_overrides[get_app_settings] = lambda: settings

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

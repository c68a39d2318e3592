"""
Conftest for API integration tests
Defines fixtures specific to API testing

Note: These tests use ASGI transport for testing without requiring a running server.
"""

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from unittest.mock import AsyncMock, MagicMock

from edumatch.api.dependencies import (
    get_current_actor,
    get_document_access_service,
    get_identity_resolver,
    get_optional_actor,
)
from edumatch.core.identity import Actor, IdentityResolver, Role
from edumatch.main import app


@pytest.fixture
def access_service():
    """Mock document access service"""
    service = MagicMock()
    service.authorize_and_fetch = AsyncMock()
    service.presign = AsyncMock()
    return service


@pytest.fixture
def applicant_actor():
    return Actor(id="u-app1", role=Role.APPLICANT, applicant_id="app1")


@pytest.fixture
def institution_actor():
    return Actor(id="u-inst1", role=Role.INSTITUTION, institution_id="inst1")


@pytest.fixture
def override_actor():
    """Install an actor for both required and optional authentication"""
    def install(actor: Actor):
        app.dependency_overrides[get_current_actor] = lambda: actor
        app.dependency_overrides[get_optional_actor] = lambda: actor
    return install


@pytest_asyncio.fixture
async def client(access_service):
    """
    HTTP client against the app with storage and identity stubbed out

    The identity resolver never reaches the database: requests without a
    token are rejected before any lookup.
    """
    app.dependency_overrides[get_document_access_service] = lambda: access_service
    app.dependency_overrides[get_identity_resolver] = lambda: IdentityResolver(MagicMock())

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()

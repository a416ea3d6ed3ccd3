"""Shared test fixtures for Latchkey."""

from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from latchkey.api.main import create_app
from latchkey.passkey.orchestrator import PasskeyOrchestrator
from latchkey.settings import Settings, get_settings
from latchkey.storage.kv import MemoryKeyValueStore
from latchkey.storage.user_records import UserRecordStore
from tests.helpers.settings import make_test_settings
from tests.mocks import FakeVerifier


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    """Keep cached settings from leaking between tests."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def test_settings() -> Settings:
    return make_test_settings()


@pytest.fixture
def kv() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def record_store(kv: MemoryKeyValueStore) -> UserRecordStore:
    return UserRecordStore(kv)


@pytest.fixture
def verifier() -> FakeVerifier:
    return FakeVerifier()


@pytest.fixture
def orchestrator(record_store: UserRecordStore, verifier: FakeVerifier) -> PasskeyOrchestrator:
    return PasskeyOrchestrator(record_store, verifier)


@pytest.fixture
async def client(
    test_settings: Settings, orchestrator: PasskeyOrchestrator
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to an app using the fake verifier."""
    app = create_app(test_settings, orchestrator=orchestrator)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

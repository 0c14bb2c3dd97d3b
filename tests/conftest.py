"""
tests/conftest.py -- Shared test fixtures for magic-login tests.

This module provides:
  - FakeClock: injectable clock for deterministic TTL tests
  - options / registry / companion / accounts / cache: isolated in-memory stores
  - api_client: TestClient wired to isolated stores with the companion active

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the API fixture because TestClient runs sync route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to each
worker thread.

Environment must be set before any auth/core import: DEBUG lets
get_settings() auto-generate SECRET_KEY, BCRYPT_ROUNDS keeps hashing fast,
and HOME_URL fixes the domain bound into every token.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: set before any project import -- auth.tokens reads settings at import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("HOME_URL", "https://example.com")
os.environ.setdefault("REDEEM_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.endpoint import EndpointRegistry
from auth.store import AccountStore
from cache.store import TokenCache
from core.companion import CompanionServer
from core.options import OptionStore

HOME_URL = "https://example.com"
DOMAIN = "example.com"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Store fixtures -- fresh per test
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def options() -> Generator[OptionStore, None, None]:
    store = OptionStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def registry(options: OptionStore) -> EndpointRegistry:
    return EndpointRegistry(options)


@pytest.fixture
def companion(options: OptionStore) -> CompanionServer:
    return CompanionServer(options)


@pytest.fixture
def accounts() -> Generator[AccountStore, None, None]:
    store = AccountStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def cache(clock: FakeClock) -> Generator[TokenCache, None, None]:
    store = TokenCache(":memory:", clock=clock)
    yield store
    store.close()


# ---------------------------------------------------------------------------
# API fixture -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


def _patch_lifespan(db_url: str):
    """Return an async context manager that replaces the real lifespan.

    Wires isolated stores into app.state and switches the companion on so
    the redemption route answers. The purge_task is a long-sleeping coroutine
    (a real asyncio.Task is required; MagicMock would fail on .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.options = OptionStore(db_url)
        app.state.registry = EndpointRegistry(app.state.options)
        app.state.companion = CompanionServer(app.state.options)
        app.state.companion.install()
        app.state.companion.toggle("on")
        app.state.account_store = AccountStore(db_url)
        app.state.token_cache = TokenCache(":memory:")
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()
        app.state.token_cache.close()
        app.state.account_store.close()
        app.state.options.close()

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[TestClient, None, None]:
    """Yield a TestClient for the companion server.

    Stores are reachable through client.app.state (registry, token_cache,
    account_store, companion). follow_redirects=False so tests can assert on
    the redemption redirect and its Set-Cookie header.
    """
    db_url = f"sqlite:///file:test_{request.module.__name__}?mode=memory&cache=shared&uri=true"
    app.router.lifespan_context = _patch_lifespan(db_url)

    with TestClient(app, base_url=HOME_URL, follow_redirects=False, raise_server_exceptions=True) as client:
        yield client

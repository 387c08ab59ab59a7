"""
tests/conftest.py -- Shared test fixtures for SecDesk integration tests.

This module provides:
  - FrozenClock: a settable clock installed as app.state.clock
  - _make_test_stores(): creates isolated in-memory DBs for helpdesk + CMDB
  - _patch_lifespan(): wires test stores and the clock into app.state, bypassing real startup
  - api_client: (client, clock) for API integration tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

RATE_LIMIT_ENABLED must be set before api.limiter is imported: the limiter
reads settings once at import time.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# CRITICAL: disable rate limiting before any api/ import.
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from cmdb.store import CMDBStore
from helpdesk.store import HelpdeskStore

# Fixed "now" for every API test module: a Monday morning, UTC.
FROZEN_NOW = datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc)

# TrustedHostMiddleware only admits localhost names.
BASE_URL = "http://localhost"


class FrozenClock:
    """Zero-argument callable returning a fixed instant that tests can move."""

    def __init__(self, now: datetime = FROZEN_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str, clock: FrozenClock) -> tuple[HelpdeskStore, CMDBStore]:
    """Create isolated named shared-memory SQLite stores for test isolation.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state (e.g. 'api', 'health').
    """
    helpdesk_url = f"sqlite:///file:test_helpdesk_{db_suffix}?mode=memory&cache=shared&uri=true"
    cmdb_url = f"sqlite:///file:test_cmdb_{db_suffix}?mode=memory&cache=shared&uri=true"
    return HelpdeskStore(helpdesk_url), CMDBStore(cmdb_url, clock=clock)


def _patch_lifespan(helpdesk: HelpdeskStore, cmdb: CMDBStore, clock: FrozenClock):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores and the frozen clock into app.state so
    TestClient routes see isolated test DBs and a deterministic "now".
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.helpdesk = helpdesk
        app.state.cmdb = cmdb
        app.state.clock = clock
        yield

    return test_lifespan


def _client_for(db_suffix: str) -> Generator[tuple[TestClient, FrozenClock], None, None]:
    clock = FrozenClock()
    helpdesk, cmdb = _make_test_stores(db_suffix, clock)
    app.router.lifespan_context = _patch_lifespan(helpdesk, cmdb, clock)
    with TestClient(app, base_url=BASE_URL, raise_server_exceptions=True) as client:
        yield client, clock
    helpdesk.close()
    cmdb.close()


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, FrozenClock], None, None]:
    """Yield (client, clock) backed by in-memory stores private to the test module.

    The clock starts at FROZEN_NOW for every module. Tests that move it should
    put it back, or use set() at the start of the test.
    """
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    yield from _client_for(suffix)


@pytest.fixture
def clock_reset(api_client):
    """Reset the shared clock to FROZEN_NOW before and after a test."""
    _client, clock = api_client
    clock.set(FROZEN_NOW)
    yield clock
    clock.set(FROZEN_NOW)

"""
langcrm Test Configuration

Shared fixtures for all tests.
"""
import pytest
import pytest_asyncio

from langcrm.attribution import StaticAttribution
from langcrm.events import DomainEvent, EventBus
from langcrm.models import Actor
from langcrm.runtime import CRM
from langcrm.store.sql_store import SQLStore


# =============================================================================
# FIXTURES: Identity & events
# =============================================================================

@pytest.fixture
def actor() -> Actor:
    return Actor(id="user-1", username="grace")


@pytest.fixture
def attribution(actor) -> StaticAttribution:
    return StaticAttribution(actor)


@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest.fixture
def recorded(events):
    """Every emitted event as (event, payload), in emission order."""
    seen = []
    for event in DomainEvent:
        events.subscribe(event, lambda payload, event=event: seen.append((event, payload)))
    return seen


# =============================================================================
# FIXTURES: Stores
# =============================================================================

@pytest_asyncio.fixture
async def store(tmp_path):
    """Fresh SQLite-backed store per test."""
    sql_store = SQLStore(f"sqlite+aiosqlite:///{tmp_path / 'crm.db'}")
    await sql_store.init()
    yield sql_store
    await sql_store.close()


@pytest_asyncio.fixture
async def crm(store, attribution, events) -> CRM:
    return CRM(store, attribution, events)

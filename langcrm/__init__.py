"""langcrm: CRM core for a language-services business.

Tracks prospects from inquiry to conversion (student registration for
language training, fee-bearing completion for translation and
interpretation jobs), keeps class rosters consistent, schedules
follow-ups, and aggregates dashboard metrics over time windows.

Usage:
    from langcrm import CRM, SQLStore, StaticAttribution, Actor

    store = SQLStore("sqlite+aiosqlite:///data/langcrm.db")
    async with CRM(store, StaticAttribution(Actor(id="u1", username="amina"))) as crm:
        prospect = await crm.prospects.add_prospect({...})
"""

__version__ = "1.0.0"

from langcrm.attribution import AttributionProvider, StaticAttribution
from langcrm.errors import (
    AttributionError,
    CRMError,
    InvalidStateError,
    NotFoundError,
    StorageError,
    ValidationFailed,
)
from langcrm.events import DomainEvent, EventBus
from langcrm.models import Actor
from langcrm.runtime import CRM
from langcrm.store import APIStore, DataStore, SQLStore

__all__ = [
    "__version__",
    "CRM",
    "Actor",
    "AttributionProvider",
    "StaticAttribution",
    "DomainEvent",
    "EventBus",
    "DataStore",
    "SQLStore",
    "APIStore",
    "CRMError",
    "ValidationFailed",
    "InvalidStateError",
    "NotFoundError",
    "StorageError",
    "AttributionError",
]

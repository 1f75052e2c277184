"""Wiring: one store, one event bus, one attribution provider, all services."""

from typing import Optional

from langcrm.attribution import AttributionProvider, StaticAttribution
from langcrm.clients.students import StudentService
from langcrm.config import CRMConfig
from langcrm.enrollment.service import EnrollmentService
from langcrm.events import EventBus
from langcrm.finance.ledger import FinanceService
from langcrm.prospects.lifecycle import ProspectLifecycle
from langcrm.store import DataStore, build_store
from langcrm.tasks.scheduler import TaskService


class CRM:
    """Service container. Use as ``async with CRM(...) as crm``."""

    def __init__(
        self,
        store: DataStore,
        attribution: AttributionProvider,
        events: Optional[EventBus] = None,
    ):
        self.store = store
        self.attribution = attribution
        self.events = events or EventBus()
        self.prospects = ProspectLifecycle(store, attribution, self.events)
        self.students = StudentService(store, attribution, self.events)
        self.enrollment = EnrollmentService(store, attribution, self.events)
        self.tasks = TaskService(store, attribution, self.events)
        self.finance = FinanceService(store, attribution)

    @classmethod
    def from_config(cls, config: CRMConfig) -> "CRM":
        return cls(build_store(config.store), StaticAttribution.from_config(config.actor))

    async def __aenter__(self) -> "CRM":
        await self.store.init()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.store.close()

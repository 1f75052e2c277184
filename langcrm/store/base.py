"""Data store contract consumed by the CRM core.

Two implementations exist: SQLStore (embedded, transactional) and
APIStore (remote REST, best-effort multi-record writes). Services depend
only on this interface.

Conventions:
- ``get_*`` returns None for unknown ids
- ``update_*`` / ``delete_*`` raise NotFoundError for unknown ids
- any backend failure surfaces as StorageError
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, Optional

from langcrm.models import (
    Actor,
    Communication,
    Expenditure,
    FollowUpAction,
    LanguageClass,
    Payment,
    Prospect,
    ProspectStatus,
    SearchCriteria,
    Student,
)
from langcrm.reporting.windows import filter_by_window


class DataStore(ABC):
    """Async persistence interface for every CRM entity."""

    async def init(self) -> None:
        """Prepare the backend (create tables, open clients)."""

    async def close(self) -> None:
        """Release connections."""

    async def __aenter__(self) -> "DataStore":
        await self.init()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    # --- Prospects ---

    @abstractmethod
    async def add_prospect(self, prospect: Prospect) -> Prospect: ...

    @abstractmethod
    async def get_prospect(self, prospect_id: str) -> Optional[Prospect]: ...

    @abstractmethod
    async def list_prospects(self) -> list[Prospect]:
        """All prospects regardless of status."""

    @abstractmethod
    async def update_prospect(self, prospect: Prospect) -> Prospect: ...

    @abstractmethod
    async def delete_prospect(self, prospect_id: str) -> None:
        """Delete permanently, together with its follow-ups and linked communications."""

    async def search_prospects(
        self, criteria: Optional[SearchCriteria] = None, now: Optional[datetime] = None
    ) -> list[Prospect]:
        """Active (Inquired) prospects matching ``criteria``, newest contact first."""
        return filter_prospects(await self.list_prospects(), criteria or SearchCriteria(), now)

    async def get_completed_jobs(self) -> list[Prospect]:
        """Converted prospects, newest completion first."""
        return sort_completed(await self.list_prospects())

    # --- Follow-ups ---

    @abstractmethod
    async def add_follow_up(self, follow_up: FollowUpAction) -> FollowUpAction: ...

    @abstractmethod
    async def get_follow_up(self, follow_up_id: str) -> Optional[FollowUpAction]: ...

    @abstractmethod
    async def list_follow_ups(self, prospect_id: Optional[str] = None) -> list[FollowUpAction]:
        """Follow-ups by due date, optionally for one prospect."""

    @abstractmethod
    async def update_follow_up(self, follow_up: FollowUpAction) -> FollowUpAction: ...

    @abstractmethod
    async def delete_follow_up(self, follow_up_id: str) -> None: ...

    # --- Communications ---

    @abstractmethod
    async def add_communication(self, communication: Communication) -> Communication: ...

    @abstractmethod
    async def get_communication(self, communication_id: str) -> Optional[Communication]: ...

    @abstractmethod
    async def list_communications(self) -> list[Communication]:
        """Communications by due date."""

    @abstractmethod
    async def update_communication(self, communication: Communication) -> Communication: ...

    @abstractmethod
    async def delete_communication(self, communication_id: str) -> None: ...

    # --- Students ---

    @abstractmethod
    async def add_student(self, student: Student) -> Student:
        """Persist a student and assign its unique ``student_id``."""

    @abstractmethod
    async def get_student(self, student_id: str) -> Optional[Student]:
        """Look up by internal id."""

    @abstractmethod
    async def list_students(self) -> list[Student]: ...

    @abstractmethod
    async def update_student(self, student: Student) -> Student: ...

    @abstractmethod
    async def delete_student(self, student_id: str) -> None: ...

    # --- Classes ---

    @abstractmethod
    async def add_class(self, language_class: LanguageClass) -> LanguageClass: ...

    @abstractmethod
    async def get_class(self, class_id: str) -> Optional[LanguageClass]: ...

    @abstractmethod
    async def list_classes(self) -> list[LanguageClass]: ...

    @abstractmethod
    async def update_class(self, language_class: LanguageClass) -> LanguageClass: ...

    @abstractmethod
    async def delete_class(self, class_id: str) -> None: ...

    @abstractmethod
    async def apply_enrollment_delta(
        self,
        student_id: str,
        add: Iterable[str],
        remove: Iterable[str],
        actor: Optional[Actor] = None,
    ) -> None:
        """Add ``student_id`` to the rosters in ``add``, drop it from ``remove``."""

    # --- Payments ---

    @abstractmethod
    async def add_payment(self, payment: Payment) -> Payment: ...

    @abstractmethod
    async def get_payment(self, payment_id: str) -> Optional[Payment]: ...

    @abstractmethod
    async def list_payments(self, client_id: Optional[str] = None) -> list[Payment]:
        """Payments newest first, optionally for one client."""

    @abstractmethod
    async def update_payment(self, payment: Payment) -> Payment: ...

    @abstractmethod
    async def delete_payment(self, payment_id: str) -> None: ...

    # --- Expenditures ---

    @abstractmethod
    async def add_expenditure(self, expenditure: Expenditure) -> Expenditure: ...

    @abstractmethod
    async def get_expenditure(self, expenditure_id: str) -> Optional[Expenditure]: ...

    @abstractmethod
    async def list_expenditures(self) -> list[Expenditure]:
        """Expenditures newest first."""

    @abstractmethod
    async def update_expenditure(self, expenditure: Expenditure) -> Expenditure: ...

    @abstractmethod
    async def delete_expenditure(self, expenditure_id: str) -> None: ...


# --- Shared query helpers ---


def matches_term(prospect: Prospect, term: str) -> bool:
    """Case-insensitive substring match over name, email, phone and notes."""
    term = term.strip().lower()
    if not term:
        return True
    haystack = (prospect.name, prospect.email or "", prospect.phone or "", prospect.notes or "")
    return any(term in field.lower() for field in haystack)


def filter_prospects(
    prospects: Iterable[Prospect],
    criteria: SearchCriteria,
    now: Optional[datetime] = None,
) -> list[Prospect]:
    active = [p for p in prospects if p.status == ProspectStatus.INQUIRED]
    if criteria.contact_method is not None:
        active = [p for p in active if p.contact_method == criteria.contact_method]
    if criteria.service is not None:
        active = [p for p in active if p.service_type == criteria.service]
    active = [p for p in active if matches_term(p, criteria.search_term)]
    active = filter_by_window(
        active, "date_of_contact", criteria.window, criteria.custom_range, now=now
    )
    return sorted(active, key=lambda p: p.date_of_contact, reverse=True)


def sort_completed(prospects: Iterable[Prospect]) -> list[Prospect]:
    done = [p for p in prospects if p.status == ProspectStatus.CONVERTED]
    return sorted(done, key=lambda p: p.completed_on, reverse=True)

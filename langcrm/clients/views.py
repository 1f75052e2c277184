"""Client list: true students plus converted translation/interpretation jobs."""

import enum
from datetime import date
from typing import Iterable, Optional

from pydantic import BaseModel

from langcrm.models import LanguageTrainingDetails, Prospect, ServiceType, Student
from langcrm.store.base import DataStore


class ClientKind(str, enum.Enum):
    STUDENT = "Student"
    PROSPECT = "Prospect"


class ClientSummary(BaseModel):
    """Read-only row of the client list."""
    client_id: str  # internal id, used to key payments
    client_ref: str  # STU-... or C-...
    name: str
    kind: ClientKind
    service: ServiceType
    total_fee: float
    registration_date: date
    email: Optional[str] = None
    phone: Optional[str] = None


def client_ref_for(prospect: Prospect) -> str:
    return f"C-{prospect.id[:6]}"


def student_summary(student: Student) -> ClientSummary:
    return ClientSummary(
        client_id=student.id,
        client_ref=student.student_id or "",
        name=student.name,
        kind=ClientKind.STUDENT,
        service=ServiceType.LANGUAGE_TRAINING,
        total_fee=student.fees,
        registration_date=student.registration_date,
        email=student.email,
        phone=student.phone,
    )


def job_summary(prospect: Prospect) -> Optional[ClientSummary]:
    """Summary of a converted job; None for training prospects (their client is the Student)."""
    if not prospect.is_converted or isinstance(prospect.details, LanguageTrainingDetails):
        return None
    return ClientSummary(
        client_id=prospect.id,
        client_ref=client_ref_for(prospect),
        name=prospect.name,
        kind=ClientKind.PROSPECT,
        service=prospect.service_type,
        total_fee=prospect.total_fee,
        registration_date=prospect.converted_on or prospect.completed_on,
        email=prospect.email,
        phone=prospect.phone,
    )


def build_client_summaries(
    students: Iterable[Student], completed_jobs: Iterable[Prospect]
) -> list[ClientSummary]:
    clients = [student_summary(s) for s in students]
    clients += [c for c in (job_summary(p) for p in completed_jobs) if c is not None]
    return sorted(clients, key=lambda c: c.name.casefold())


async def list_clients(store: DataStore) -> list[ClientSummary]:
    return build_client_summaries(await store.list_students(), await store.get_completed_jobs())


async def find_client(store: DataStore, client_id: str) -> Optional[ClientSummary]:
    student = await store.get_student(client_id)
    if student is not None:
        return student_summary(student)
    prospect = await store.get_prospect(client_id)
    return job_summary(prospect) if prospect is not None else None

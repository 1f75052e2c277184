"""Student records outside the conversion path: direct registration and edits."""

import logging
from typing import Any, Optional, Union

from pydantic import ValidationError, field_validator

from langcrm.attribution import AttributionProvider
from langcrm.errors import InvalidStateError, NotFoundError, ValidationFailed
from langcrm.events import DomainEvent, EventBus
from langcrm.models import Student, StudentDetails
from langcrm.store.base import DataStore

logger = logging.getLogger(__name__)

# Never changed by an edit
_FROZEN_FIELDS = ("id", "student_id", "prospect_id", "created_by", "created_by_username", "created_at")


class StudentForm(StudentDetails):
    """Walk-in registration: contact info plus the conversion details."""

    name: str
    email: Optional[str] = None
    phone: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _name_required(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Name must be at least 2 characters")
        return v


class StudentService:
    def __init__(self, store: DataStore, attribution: AttributionProvider, events: EventBus):
        self.store = store
        self.attribution = attribution
        self.events = events

    async def register_student(self, data: Union[StudentForm, dict[str, Any]]) -> Student:
        """Register a student directly; the store assigns ``student_id``."""
        try:
            form = StudentForm.model_validate(
                data.model_dump() if isinstance(data, StudentForm) else data
            )
        except ValidationError as e:
            raise ValidationFailed.from_pydantic(e) from e
        actor = await self.attribution.current_actor()

        student = Student(**form.model_dump())
        student.stamp_created(actor)
        student = await self.store.add_student(student)
        logger.info(f"Registered student {student.student_id} ({student.name})")
        await self.events.emit(DomainEvent.STUDENT_CREATED, student)
        return student

    async def update_student(self, student_id: str, changes: dict[str, Any]) -> Student:
        """Apply ``changes`` to a student. ``student_id`` can never change."""
        actor = await self.attribution.current_actor()
        current = await self.store.get_student(student_id)
        if current is None:
            raise NotFoundError("student", student_id)
        if "student_id" in changes and changes["student_id"] != current.student_id:
            raise InvalidStateError(f"student_id of {current.student_id} is immutable")

        merged = {**current.model_dump(), **changes}
        merged.update({field: getattr(current, field) for field in _FROZEN_FIELDS})
        try:
            updated = Student.model_validate(merged)
        except ValidationError as e:
            raise ValidationFailed.from_pydantic(e) from e

        updated.stamp_modified(actor)
        return await self.store.update_student(updated)

    async def get_student(self, student_id: str) -> Optional[Student]:
        return await self.store.get_student(student_id)

    async def list_students(self) -> list[Student]:
        return await self.store.list_students()

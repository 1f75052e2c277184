"""Student <-> class enrollment.

A class's ``student_ids`` is the only record of who attends it. A
student's classes are derived by scanning every class; that is linear in
the number of classes, fine for a school-sized catalogue.

Each enrollment change reads a roster snapshot, diffs it against the
target and hands only the delta to the store, all under one lock so two
changes never interleave their read and write.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional, Union

from pydantic import BaseModel, ValidationError, field_validator

from langcrm.attribution import AttributionProvider
from langcrm.errors import NotFoundError, ValidationFailed
from langcrm.events import DomainEvent, EventBus
from langcrm.models import ClassLevel, ClassSession, LanguageClass, Student
from langcrm.store.base import DataStore

logger = logging.getLogger(__name__)


class ClassForm(BaseModel):
    """Editable class fields. The roster is managed via enrollment only."""
    name: str
    language: str
    level: ClassLevel
    teacher_id: str = ""
    schedule: list[ClassSession] = []

    @field_validator("name", "language")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v


@dataclass
class EnrollmentChange:
    """What ``set_student_enrollments`` actually changed."""
    student_id: str
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)


def _parse_form(data: Union[ClassForm, dict[str, Any]]) -> ClassForm:
    if isinstance(data, ClassForm):
        return data
    try:
        return ClassForm.model_validate(data)
    except ValidationError as e:
        raise ValidationFailed.from_pydantic(e) from e


class EnrollmentService:
    def __init__(self, store: DataStore, attribution: AttributionProvider, events: EventBus):
        self.store = store
        self.attribution = attribution
        self.events = events
        self._lock = asyncio.Lock()

    # --- Classes ---

    async def create_class(self, data: Union[ClassForm, dict[str, Any]]) -> LanguageClass:
        form = _parse_form(data)
        actor = await self.attribution.current_actor()
        language_class = LanguageClass(**form.model_dump())
        language_class.stamp_created(actor)
        created = await self.store.add_class(language_class)
        logger.info(f"Class {created.class_id} created: {created.name} ({created.level.value})")
        return created

    async def update_class(
        self, class_id: str, data: Union[ClassForm, dict[str, Any]]
    ) -> LanguageClass:
        """Edit a class. The roster is carried over untouched."""
        form = _parse_form(data)
        actor = await self.attribution.current_actor()
        async with self._lock:
            current = await self.store.get_class(class_id)
            if current is None:
                raise NotFoundError("class", class_id)
            updated = current.model_copy(update=form.model_dump())
            updated.schedule = form.schedule
            updated.stamp_modified(actor)
            return await self.store.update_class(updated)

    async def delete_class(self, class_id: str) -> None:
        """Delete a class; its students simply stop being enrolled in it."""
        await self.attribution.current_actor()
        async with self._lock:
            await self.store.delete_class(class_id)
        await self.events.emit(DomainEvent.ENROLLMENT_UPDATED, None)

    async def get_class(self, class_id: str) -> Optional[LanguageClass]:
        return await self.store.get_class(class_id)

    async def list_classes(self) -> list[LanguageClass]:
        return await self.store.list_classes()

    async def roster(self, class_id: str) -> list[Student]:
        """Students of a class, skipping ids with no student record."""
        language_class = await self.store.get_class(class_id)
        if language_class is None:
            raise NotFoundError("class", class_id)
        students = {s.id: s for s in await self.store.list_students()}
        return [students[sid] for sid in language_class.student_ids if sid in students]

    # --- Enrollment ---

    async def enrollments_for(self, student_id: str) -> list[LanguageClass]:
        return [c for c in await self.store.list_classes() if c.has_student(student_id)]

    async def _reconcile(
        self,
        student_id: str,
        target_of: Callable[[set[str]], set[str]],
        touched: Iterable[str] = (),
    ) -> EnrollmentChange:
        """Read rosters, compute the target from the current set, write the delta."""
        actor = await self.attribution.current_actor()

        async with self._lock:
            if await self.store.get_student(student_id) is None:
                raise NotFoundError("student", student_id)
            classes = await self.store.list_classes()
            current = {c.class_id for c in classes if c.has_student(student_id)}
            target = target_of(current)
            unknown = sorted((target | set(touched)) - {c.class_id for c in classes})
            if unknown:
                raise NotFoundError("class", unknown[0])

            change = EnrollmentChange(
                student_id=student_id,
                added=sorted(target - current),
                removed=sorted(current - target),
            )
            if not change.changed:
                logger.debug(f"Enrollment for {student_id} already up to date")
                return change
            await self.store.apply_enrollment_delta(
                student_id, change.added, change.removed, actor=actor
            )

        logger.info(
            f"Student {student_id}: enrolled in {change.added}, removed from {change.removed}"
        )
        await self.events.emit(DomainEvent.ENROLLMENT_UPDATED, change)
        return change

    async def set_student_enrollments(
        self, student_id: str, class_ids: Iterable[str]
    ) -> EnrollmentChange:
        """Make ``class_ids`` exactly the set of classes the student attends.

        Only the delta is written; other classes are not touched. Calling
        twice with the same target is a no-op the second time.
        """
        target = set(class_ids)
        return await self._reconcile(student_id, lambda current: target)

    async def assign_student_to_class(self, student_id: str, class_id: str) -> bool:
        """Enroll one student. Returns False if they were already enrolled."""
        change = await self._reconcile(student_id, lambda current: current | {class_id})
        return change.changed

    async def remove_student_from_class(self, student_id: str, class_id: str) -> bool:
        """Unenroll one student. Returns False if they were not enrolled."""
        change = await self._reconcile(
            student_id, lambda current: current - {class_id}, touched=[class_id]
        )
        return change.changed

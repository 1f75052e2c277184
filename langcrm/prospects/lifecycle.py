"""Prospect lifecycle: intake, edits, and the three conversion paths.

Inquired -> Converted is the only transition and it is terminal.

- Language Training: ``convert_to_student`` creates a Student record
- Doc Translation / Interpretation: ``complete_service`` stores the
  completion record (fee computed by the model); ``edit_completion``
  corrects it afterwards without touching the status
"""

import asyncio
import logging
from typing import Any, Optional, Union

from pydantic import BaseModel, ValidationError

from langcrm.attribution import AttributionProvider
from langcrm.errors import InvalidStateError, NotFoundError, ValidationFailed
from langcrm.events import DomainEvent, EventBus
from langcrm.models import (
    CompletionRecord,
    InterpretationCompletion,
    InterpretationDetails,
    LanguageTrainingDetails,
    Prospect,
    ProspectStatus,
    SearchCriteria,
    Student,
    StudentDetails,
    TranslationCompletion,
    TranslationDetails,
)
from langcrm.prospects.validation import ProspectForm, validate_prospect_form
from langcrm.store.base import DataStore

logger = logging.getLogger(__name__)


class ProspectLifecycle:
    """Owns every prospect mutation and its status transitions."""

    def __init__(self, store: DataStore, attribution: AttributionProvider, events: EventBus):
        self.store = store
        self.attribution = attribution
        self.events = events
        # One conversion at a time, so a double submit cannot convert twice
        self._convert_lock = asyncio.Lock()

    async def _require(self, prospect_id: str) -> Prospect:
        prospect = await self.store.get_prospect(prospect_id)
        if prospect is None:
            raise NotFoundError("prospect", prospect_id)
        return prospect

    # ------------------------------------------------------------------
    # Intake & edits
    # ------------------------------------------------------------------

    async def add_prospect(self, data: Union[ProspectForm, dict[str, Any]]) -> Prospect:
        form = validate_prospect_form(data)
        actor = await self.attribution.current_actor()
        prospect = form.to_prospect()
        prospect.stamp_created(actor)
        created = await self.store.add_prospect(prospect)
        logger.info(f"Prospect {created.id} added ({created.service_type.value})")
        return created

    async def update_prospect(
        self, prospect_id: str, data: Union[ProspectForm, dict[str, Any]]
    ) -> Prospect:
        """Replace the editable fields of a prospect.

        A new service branch replaces the old details object wholesale.
        Converted prospects keep their branch and completion record.
        """
        form = validate_prospect_form(data)
        actor = await self.attribution.current_actor()
        current = await self._require(prospect_id)

        details = form.details
        if current.is_converted:
            if details.service != current.details.service:
                raise InvalidStateError(
                    f"Prospect {prospect_id} is converted; its service cannot change"
                )
            if isinstance(current.details, (TranslationDetails, InterpretationDetails)):
                details = details.model_copy(update={"completion": current.details.completion})

        updated = current.model_copy(update={
            "name": form.name,
            "email": form.email,
            "phone": form.phone,
            "contact_method": form.contact_method,
            "notes": form.notes,
            "details": details,
        })
        # The contact date doubles as the conversion date once converted
        if not current.is_converted:
            updated.date_of_contact = form.date_of_contact
        updated.stamp_modified(actor)
        return await self.store.update_prospect(updated)

    async def delete_prospect(self, prospect_id: str) -> None:
        """Delete permanently. Follow-ups and linked communications go with it."""
        await self.attribution.current_actor()
        await self.store.delete_prospect(prospect_id)
        await self.events.emit(DomainEvent.FOLLOW_UP_UPDATED)
        await self.events.emit(DomainEvent.COMMUNICATION_UPDATED)

    async def get_prospect(self, prospect_id: str) -> Optional[Prospect]:
        return await self.store.get_prospect(prospect_id)

    async def search(self, criteria: Optional[SearchCriteria] = None) -> list[Prospect]:
        return await self.store.search_prospects(criteria or SearchCriteria())

    async def completed_jobs(self) -> list[Prospect]:
        return await self.store.get_completed_jobs()

    # ------------------------------------------------------------------
    # Language Training -> Student
    # ------------------------------------------------------------------

    async def convert_to_student(
        self, prospect_id: str, details: Union[StudentDetails, dict[str, Any]]
    ) -> Student:
        """Create the Student for a Language Training inquiry and close the prospect.

        Raises:
            ValidationFailed: details incomplete
            InvalidStateError: wrong service or already converted
            NotFoundError: unknown prospect
        """
        details = _validate(StudentDetails, details)
        actor = await self.attribution.current_actor()

        async with self._convert_lock:
            prospect = await self._require(prospect_id)
            if not isinstance(prospect.details, LanguageTrainingDetails):
                raise InvalidStateError(
                    f"Prospect {prospect_id} is {prospect.service_type.value}; "
                    f"log a service completion instead"
                )
            if prospect.is_converted:
                raise InvalidStateError(f"Prospect {prospect_id} is already converted")

            student = Student(
                name=prospect.name,
                email=prospect.email,
                phone=prospect.phone,
                prospect_id=prospect.id,
                **details.model_dump(),
            )
            student.stamp_created(actor)
            student = await self.store.add_student(student)

            converted = prospect.model_copy(update={
                "status": ProspectStatus.CONVERTED,
                "date_of_contact": details.registration_date,
                "converted_on": details.registration_date,
            })
            converted.stamp_modified(actor)
            try:
                await self.store.update_prospect(converted)
            except Exception:
                logger.warning(
                    f"Conversion of {prospect_id} failed after creating "
                    f"{student.student_id}; removing the student again"
                )
                await self.store.delete_student(student.id)
                raise

        logger.info(f"Prospect {prospect_id} converted to student {student.student_id}")
        await self.events.emit(DomainEvent.STUDENT_CREATED, student)
        await self.events.emit(DomainEvent.PROSPECT_CONVERTED, student)
        return student

    # ------------------------------------------------------------------
    # Doc Translation / Interpretation completion
    # ------------------------------------------------------------------

    async def complete_service(
        self, prospect_id: str, completion: Union[CompletionRecord, dict[str, Any]]
    ) -> Prospect:
        """First completion of a translation or interpretation job."""
        return await self._store_completion(prospect_id, completion, expect_converted=False)

    async def edit_completion(
        self, prospect_id: str, completion: Union[CompletionRecord, dict[str, Any]]
    ) -> Prospect:
        """Correct the completion record of an already converted job."""
        return await self._store_completion(prospect_id, completion, expect_converted=True)

    async def log_service_completion(
        self, prospect_id: str, completion: Union[CompletionRecord, dict[str, Any]]
    ) -> Prospect:
        """Complete the job, or edit its completion record if already done."""
        return await self._store_completion(prospect_id, completion, expect_converted=None)

    async def _store_completion(
        self,
        prospect_id: str,
        completion: Union[CompletionRecord, dict[str, Any]],
        expect_converted: Optional[bool],
    ) -> Prospect:
        actor = await self.attribution.current_actor()

        async with self._convert_lock:
            prospect = await self._require(prospect_id)
            details = prospect.details
            if isinstance(details, TranslationDetails):
                record = _validate(TranslationCompletion, completion)
            elif isinstance(details, InterpretationDetails):
                record = _validate(InterpretationCompletion, completion)
            else:
                raise InvalidStateError(
                    f"Prospect {prospect_id} is Language Training; convert it to a student instead"
                )

            first = not prospect.is_converted
            if expect_converted is True and first:
                raise InvalidStateError(f"Prospect {prospect_id} has no completion to edit")
            if expect_converted is False and not first:
                raise InvalidStateError(f"Prospect {prospect_id} is already converted")

            updated = prospect.model_copy(update={
                "details": details.model_copy(update={"completion": record}),
                "status": ProspectStatus.CONVERTED,
                "converted_on": record.completion_date,
            })
            updated.stamp_modified(actor)
            updated = await self.store.update_prospect(updated)

        verb = "completed" if first else "completion edited"
        logger.info(f"Prospect {prospect_id} {verb}: fee {record.total_fee}")
        await self.events.emit(DomainEvent.PROSPECT_CONVERTED, updated)
        return updated


def _validate(model_cls, data):
    """Coerce ``data`` into ``model_cls`` or raise ValidationFailed."""
    if isinstance(data, model_cls):
        data = data.model_dump()
    elif isinstance(data, BaseModel):
        raise ValidationFailed.single("completion", f"Expected {model_cls.__name__}")
    try:
        return model_cls.model_validate(data)
    except ValidationError as e:
        raise ValidationFailed.from_pydantic(e) from e

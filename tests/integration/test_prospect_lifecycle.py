"""
Prospect lifecycle end-to-end: intake, edits, conversion to student,
service completion, and the events each step emits.
"""
import asyncio
from datetime import date
from unittest.mock import AsyncMock

import pytest

from langcrm.attribution import StaticAttribution
from langcrm.errors import (
    AttributionError,
    InvalidStateError,
    NotFoundError,
    StorageError,
    ValidationFailed,
)
from langcrm.events import DomainEvent
from langcrm.models import (
    ContactMethod,
    InterpretationCompletion,
    ProspectStatus,
    SearchCriteria,
    ServiceType,
    Student,
    TranslationCompletion,
)
from langcrm.runtime import CRM
from tests.fixtures.crm_data import (
    INTERPRETATION_DONE,
    STUDENT_DETAILS,
    TRANSLATION_DONE,
    interpretation_form,
    training_form,
    translation_form,
)


class TestIntake:
    @pytest.mark.asyncio
    async def test_add_stamps_creator(self, crm):
        prospect = await crm.prospects.add_prospect(training_form())
        assert prospect.status == ProspectStatus.INQUIRED
        assert prospect.created_by == "user-1"
        assert prospect.created_by_username == "grace"
        assert await crm.prospects.get_prospect(prospect.id) == prospect

    @pytest.mark.asyncio
    async def test_invalid_form_writes_nothing(self, crm):
        with pytest.raises(ValidationFailed):
            await crm.prospects.add_prospect(training_form(email=None, phone=None))
        assert await crm.store.list_prospects() == []

    @pytest.mark.asyncio
    async def test_no_actor_writes_nothing(self, store):
        crm = CRM(store, StaticAttribution(None))
        with pytest.raises(AttributionError):
            await crm.prospects.add_prospect(training_form())
        assert await store.list_prospects() == []

    @pytest.mark.asyncio
    async def test_search_by_contact_method(self, crm):
        await crm.prospects.add_prospect(training_form())
        await crm.prospects.add_prospect(interpretation_form())
        found = await crm.prospects.search(SearchCriteria(contact_method=ContactMethod.PHONE))
        assert [p.name for p in found] == ["Sarah Achieng"]

    @pytest.mark.asyncio
    async def test_completion_ignored_on_intake(self, crm, recorded):
        form = translation_form()
        form["details"] = {**form["details"], "completion": TRANSLATION_DONE}
        prospect = await crm.prospects.add_prospect(form)

        assert prospect.status == ProspectStatus.INQUIRED
        assert prospect.completion is None
        assert prospect.total_fee == 0
        assert (await crm.prospects.get_prospect(prospect.id)).completion is None
        assert await crm.prospects.completed_jobs() == []
        assert recorded == []


class TestEdits:
    @pytest.mark.asyncio
    async def test_update_switches_service_branch(self, crm, actor):
        prospect = await crm.prospects.add_prospect(training_form())
        updated = await crm.prospects.update_prospect(prospect.id, translation_form(name="Amina Nakato"))
        assert updated.service_type == ServiceType.DOC_TRANSLATION
        assert updated.modified_by == actor.id
        assert updated.created_at == prospect.created_at

    @pytest.mark.asyncio
    async def test_update_unknown(self, crm):
        with pytest.raises(NotFoundError):
            await crm.prospects.update_prospect("ghost", training_form())

    @pytest.mark.asyncio
    async def test_converted_prospect_keeps_branch_and_completion(self, crm):
        prospect = await crm.prospects.add_prospect(translation_form())
        await crm.prospects.complete_service(prospect.id, TRANSLATION_DONE)

        with pytest.raises(InvalidStateError):
            await crm.prospects.update_prospect(prospect.id, interpretation_form(name="Kato Brian"))

        edited = await crm.prospects.update_prospect(
            prospect.id, translation_form(notes="Paid in cash", date_of_contact="2026-01-01")
        )
        assert edited.notes == "Paid in cash"
        assert edited.total_fee == 50000
        assert edited.date_of_contact == date(2026, 3, 2)

    @pytest.mark.asyncio
    async def test_edit_cannot_attach_completion(self, crm):
        prospect = await crm.prospects.add_prospect(interpretation_form())
        form = interpretation_form(notes="Asked for a quote")
        form["details"] = {**form["details"], "completion": INTERPRETATION_DONE}

        edited = await crm.prospects.update_prospect(prospect.id, form)

        assert edited.notes == "Asked for a quote"
        assert edited.status == ProspectStatus.INQUIRED
        assert edited.completion is None
        assert (await crm.prospects.get_prospect(prospect.id)).completion is None

    @pytest.mark.asyncio
    async def test_delete_removes_follow_ups_and_communications(self, crm, recorded):
        prospect = await crm.prospects.add_prospect(training_form())
        await crm.tasks.add_follow_up(prospect.id, date(2026, 3, 12), "grace")
        await crm.tasks.add_communication({
            "title": "Send brochure",
            "due_date": date(2026, 3, 12),
            "prospect_id": prospect.id,
            "type": "prospect-followup",
        })
        recorded.clear()

        await crm.prospects.delete_prospect(prospect.id)
        assert await crm.tasks.list_follow_ups() == []
        assert await crm.tasks.list_communications() == []
        assert recorded == [
            (DomainEvent.FOLLOW_UP_UPDATED, None),
            (DomainEvent.COMMUNICATION_UPDATED, None),
        ]


class TestConvertToStudent:
    @pytest.mark.asyncio
    async def test_conversion(self, crm, recorded):
        prospect = await crm.prospects.add_prospect(training_form())
        student = await crm.prospects.convert_to_student(prospect.id, STUDENT_DETAILS)

        assert student.student_id == "STU-050326-0001"
        assert student.name == "Amina Nakato"
        assert student.email == "amina@example.com"
        assert student.prospect_id == prospect.id
        assert student.fees == 450000

        converted = await crm.prospects.get_prospect(prospect.id)
        assert converted.status == ProspectStatus.CONVERTED
        assert converted.converted_on == date(2026, 3, 5)
        assert converted.date_of_contact == date(2026, 3, 5)
        assert await crm.prospects.search() == []

        assert [event for event, _ in recorded] == [
            DomainEvent.STUDENT_CREATED,
            DomainEvent.PROSPECT_CONVERTED,
        ]
        assert recorded[1][1] == student

    @pytest.mark.asyncio
    async def test_second_conversion_rejected(self, crm):
        prospect = await crm.prospects.add_prospect(training_form())
        await crm.prospects.convert_to_student(prospect.id, STUDENT_DETAILS)
        with pytest.raises(InvalidStateError):
            await crm.prospects.convert_to_student(prospect.id, STUDENT_DETAILS)
        assert len(await crm.students.list_students()) == 1

    @pytest.mark.asyncio
    async def test_concurrent_double_submit_creates_one_student(self, crm):
        prospect = await crm.prospects.add_prospect(training_form())
        results = await asyncio.gather(
            crm.prospects.convert_to_student(prospect.id, STUDENT_DETAILS),
            crm.prospects.convert_to_student(prospect.id, STUDENT_DETAILS),
            return_exceptions=True,
        )
        assert sum(isinstance(r, Student) for r in results) == 1
        assert sum(isinstance(r, InvalidStateError) for r in results) == 1
        assert len(await crm.students.list_students()) == 1

    @pytest.mark.asyncio
    async def test_only_language_training(self, crm):
        prospect = await crm.prospects.add_prospect(translation_form())
        with pytest.raises(InvalidStateError):
            await crm.prospects.convert_to_student(prospect.id, STUDENT_DETAILS)

    @pytest.mark.asyncio
    async def test_incomplete_details(self, crm):
        prospect = await crm.prospects.add_prospect(training_form())
        with pytest.raises(ValidationFailed) as exc_info:
            await crm.prospects.convert_to_student(prospect.id, {"fees": -5})
        assert "registration_date" in exc_info.value.errors
        assert (await crm.prospects.get_prospect(prospect.id)).status == ProspectStatus.INQUIRED

    @pytest.mark.asyncio
    async def test_failed_prospect_update_removes_student(self, crm, recorded):
        prospect = await crm.prospects.add_prospect(training_form())
        crm.store.update_prospect = AsyncMock(side_effect=StorageError("disk full"))

        with pytest.raises(StorageError):
            await crm.prospects.convert_to_student(prospect.id, STUDENT_DETAILS)

        assert await crm.store.list_students() == []
        assert (await crm.store.get_prospect(prospect.id)).status == ProspectStatus.INQUIRED
        assert recorded == []


class TestServiceCompletion:
    @pytest.mark.asyncio
    async def test_translation_end_to_end(self, crm, recorded):
        prospect = await crm.prospects.add_prospect(translation_form())
        done = await crm.prospects.complete_service(prospect.id, TRANSLATION_DONE)

        assert done.status == ProspectStatus.CONVERTED
        assert isinstance(done.completion, TranslationCompletion)
        assert done.total_fee == 50000
        assert done.converted_on == date(2026, 3, 8)
        assert [p.id for p in await crm.prospects.completed_jobs()] == [prospect.id]
        assert await crm.prospects.search() == []
        assert recorded == [(DomainEvent.PROSPECT_CONVERTED, done)]

    @pytest.mark.asyncio
    async def test_interpretation_fee(self, crm):
        prospect = await crm.prospects.add_prospect(interpretation_form())
        done = await crm.prospects.complete_service(prospect.id, INTERPRETATION_DONE)
        assert isinstance(done.completion, InterpretationCompletion)
        assert done.total_fee == pytest.approx(140000)

    @pytest.mark.asyncio
    async def test_complete_twice_rejected_but_edit_allowed(self, crm):
        prospect = await crm.prospects.add_prospect(translation_form())
        await crm.prospects.complete_service(prospect.id, TRANSLATION_DONE)
        with pytest.raises(InvalidStateError):
            await crm.prospects.complete_service(prospect.id, TRANSLATION_DONE)

        edited = await crm.prospects.edit_completion(
            prospect.id, {**TRANSLATION_DONE, "number_of_pages": 12}
        )
        assert edited.total_fee == 60000
        assert edited.status == ProspectStatus.CONVERTED

    @pytest.mark.asyncio
    async def test_edit_before_completion_rejected(self, crm):
        prospect = await crm.prospects.add_prospect(translation_form())
        with pytest.raises(InvalidStateError):
            await crm.prospects.edit_completion(prospect.id, TRANSLATION_DONE)

    @pytest.mark.asyncio
    async def test_log_completion_handles_both(self, crm):
        prospect = await crm.prospects.add_prospect(interpretation_form())
        await crm.prospects.log_service_completion(prospect.id, INTERPRETATION_DONE)
        again = await crm.prospects.log_service_completion(
            prospect.id, {**INTERPRETATION_DONE, "completion_date": "2026-03-11"}
        )
        assert again.converted_on == date(2026, 3, 11)
        assert again.completed_on == date(2026, 3, 11)

    @pytest.mark.asyncio
    async def test_wrong_record_type(self, crm):
        prospect = await crm.prospects.add_prospect(translation_form())
        record = InterpretationCompletion.model_validate(INTERPRETATION_DONE)
        with pytest.raises(ValidationFailed) as exc_info:
            await crm.prospects.complete_service(prospect.id, record)
        assert "completion" in exc_info.value.errors

    @pytest.mark.asyncio
    async def test_language_training_cannot_complete(self, crm):
        prospect = await crm.prospects.add_prospect(training_form())
        with pytest.raises(InvalidStateError):
            await crm.prospects.complete_service(prospect.id, TRANSLATION_DONE)

    @pytest.mark.asyncio
    async def test_invalid_completion_keeps_prospect_inquired(self, crm):
        prospect = await crm.prospects.add_prospect(translation_form())
        with pytest.raises(ValidationFailed) as exc_info:
            await crm.prospects.complete_service(prospect.id, {**TRANSLATION_DONE, "number_of_pages": 0})
        assert "number_of_pages" in exc_info.value.errors
        assert (await crm.prospects.get_prospect(prospect.id)).status == ProspectStatus.INQUIRED

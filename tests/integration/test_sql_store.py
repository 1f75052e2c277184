"""
SQLStore tests against a real SQLite database.

Each test gets a fresh database file under tmp_path (see conftest).
"""
import asyncio
from datetime import date, datetime, timedelta, timezone

import pytest

from langcrm.errors import NotFoundError, StorageError
from langcrm.models import (
    Actor,
    Communication,
    FollowUpAction,
    LanguageClass,
    Payment,
    Prospect,
    ProspectStatus,
    SearchCriteria,
    Student,
    TimeWindow,
    TranslationDetails,
)
from langcrm.store.sql_store import SQLStore
from tests.fixtures.crm_data import (
    TRANSLATION_DONE,
    class_form,
    interpretation_form,
    training_form,
    translation_form,
)


def student(name="Amina Nakato", registered=date(2026, 3, 5), **kwargs) -> Student:
    return Student(name=name, registration_date=registered, **kwargs)


class TestProspectStorage:
    @pytest.mark.asyncio
    async def test_round_trip_keeps_details_branch(self, store):
        data = translation_form()
        data["details"]["completion"] = TRANSLATION_DONE
        prospect = Prospect.model_validate(data)
        await store.add_prospect(prospect)

        loaded = await store.get_prospect(prospect.id)
        assert isinstance(loaded.details, TranslationDetails)
        assert loaded.details.completion.total_fee == 50000
        assert loaded.created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_get_unknown_returns_none(self, store):
        assert await store.get_prospect("nope") is None

    @pytest.mark.asyncio
    async def test_update_unknown_raises(self, store):
        with pytest.raises(NotFoundError):
            await store.update_prospect(Prospect.model_validate(training_form()))

    @pytest.mark.asyncio
    async def test_duplicate_id_is_storage_error(self, store):
        prospect = Prospect.model_validate(training_form())
        await store.add_prospect(prospect)
        with pytest.raises(StorageError):
            await store.add_prospect(prospect)

    @pytest.mark.asyncio
    async def test_delete_cascades_to_tasks(self, store):
        prospect = await store.add_prospect(Prospect.model_validate(training_form()))
        other = await store.add_prospect(Prospect.model_validate(translation_form()))
        await store.add_follow_up(FollowUpAction(
            prospect_id=prospect.id, due_date=date(2026, 3, 12), assigned_to="grace"
        ))
        await store.add_follow_up(FollowUpAction(
            prospect_id=other.id, due_date=date(2026, 3, 12), assigned_to="grace"
        ))
        await store.add_communication(Communication(
            title="Send brochure", due_date=date(2026, 3, 12), prospect_id=prospect.id
        ))
        await store.add_communication(Communication(title="Buy paper", due_date=date(2026, 3, 12)))

        await store.delete_prospect(prospect.id)

        assert await store.get_prospect(prospect.id) is None
        assert [f.prospect_id for f in await store.list_follow_ups()] == [other.id]
        assert [c.title for c in await store.list_communications()] == ["Buy paper"]

    @pytest.mark.asyncio
    async def test_search_filters_active_only(self, store):
        active = await store.add_prospect(Prospect.model_validate(training_form()))
        done = Prospect.model_validate(translation_form(notes="amina referred me"))
        done.status = ProspectStatus.CONVERTED
        await store.add_prospect(done)

        found = await store.search_prospects(SearchCriteria(search_term="AMINA"))
        assert [p.id for p in found] == [active.id]

    @pytest.mark.asyncio
    async def test_search_by_service_and_window(self, store):
        await store.add_prospect(Prospect.model_validate(training_form(date_of_contact="2026-03-28")))
        await store.add_prospect(Prospect.model_validate(interpretation_form(date_of_contact="2026-03-29")))
        await store.add_prospect(Prospect.model_validate(interpretation_form(
            name="Old Lead", date_of_contact="2026-01-02"
        )))

        criteria = SearchCriteria(service="Interpretation", window=TimeWindow.LAST_7D)
        found = await store.search_prospects(criteria, now=datetime(2026, 3, 31, 12))
        assert [p.name for p in found] == ["Sarah Achieng"]

    @pytest.mark.asyncio
    async def test_search_newest_first(self, store):
        await store.add_prospect(Prospect.model_validate(training_form(name="First", date_of_contact="2026-03-01")))
        await store.add_prospect(Prospect.model_validate(training_form(name="Second", date_of_contact="2026-03-05")))
        assert [p.name for p in await store.search_prospects()] == ["Second", "First"]


class TestStudentIds:
    @pytest.mark.asyncio
    async def test_sequential_ids(self, store):
        first = await store.add_student(student())
        second = await store.add_student(student("Joel Okello", date(2026, 4, 1)))
        assert first.student_id == "STU-050326-0001"
        assert second.student_id == "STU-010426-0002"

    @pytest.mark.asyncio
    async def test_sequence_restarts_each_year(self, store):
        await store.add_student(student(registered=date(2025, 12, 30)))
        new_year = await store.add_student(student("Joel Okello", date(2026, 1, 2)))
        assert new_year.student_id == "STU-020126-0001"

    @pytest.mark.asyncio
    async def test_concurrent_registrations_get_distinct_ids(self, store):
        created = await asyncio.gather(*(store.add_student(student(f"Student {i}")) for i in range(10)))
        ids = {s.student_id for s in created}
        assert len(ids) == 10
        assert len({s.student_id for s in await store.list_students()}) == 10

    @pytest.mark.asyncio
    async def test_preset_id_is_kept_and_not_reissued(self, store):
        restored = await store.add_student(student(student_id="STU-010326-0007"))
        fresh = await store.add_student(student("Joel Okello"))
        assert restored.student_id == "STU-010326-0007"
        assert fresh.student_id == "STU-050326-0008"

    @pytest.mark.asyncio
    async def test_counter_continues_after_existing_rows(self, tmp_path):
        url = f"sqlite+aiosqlite:///{tmp_path / 'reopen.db'}"
        async with SQLStore(url) as first:
            await first.add_student(student())
        async with SQLStore(url) as second:
            again = await second.add_student(student("Joel Okello"))
        assert again.student_id == "STU-050326-0002"


class TestEnrollmentDelta:
    @pytest.fixture
    def actor(self):
        return Actor(id="user-2", username="joel")

    @pytest.mark.asyncio
    async def test_adds_and_removes_in_one_call(self, store, actor):
        a = await store.add_class(LanguageClass(**class_form(name="A"), student_ids=["s-1", "s-2"]))
        b = await store.add_class(LanguageClass(**class_form(name="B")))

        await store.apply_enrollment_delta("s-1", add=[b.class_id], remove=[a.class_id], actor=actor)

        assert (await store.get_class(a.class_id)).student_ids == ["s-2"]
        updated_b = await store.get_class(b.class_id)
        assert updated_b.student_ids == ["s-1"]
        assert updated_b.modified_by == "user-2"
        assert updated_b.modified_at > datetime.now(timezone.utc) - timedelta(minutes=1)

    @pytest.mark.asyncio
    async def test_no_duplicate_roster_entries(self, store):
        a = await store.add_class(LanguageClass(**class_form(name="A"), student_ids=["s-1"]))
        await store.apply_enrollment_delta("s-1", add=[a.class_id], remove=[])
        assert (await store.get_class(a.class_id)).student_ids == ["s-1"]

    @pytest.mark.asyncio
    async def test_unknown_class_changes_nothing(self, store):
        a = await store.add_class(LanguageClass(**class_form(name="A")))
        with pytest.raises(NotFoundError):
            await store.apply_enrollment_delta("s-1", add=[a.class_id, "missing"], remove=[])
        assert (await store.get_class(a.class_id)).student_ids == []


class TestOrdering:
    @pytest.mark.asyncio
    async def test_payments_newest_first_and_by_client(self, store):
        for day, client in [(1, "c-1"), (9, "c-1"), (5, "c-2")]:
            await store.add_payment(Payment(
                payer_name="x", client_id=client, payment_date=date(2026, 3, day),
                amount=10, service="Language Training",
            ))
        assert [p.payment_date.day for p in await store.list_payments()] == [9, 5, 1]
        assert [p.payment_date.day for p in await store.list_payments("c-1")] == [9, 1]

    @pytest.mark.asyncio
    async def test_follow_ups_by_due_date(self, store):
        prospect = await store.add_prospect(Prospect.model_validate(training_form()))
        for day in (20, 11, 15):
            await store.add_follow_up(FollowUpAction(
                prospect_id=prospect.id, due_date=date(2026, 3, day), assigned_to="grace"
            ))
        due = [f.due_date.day for f in await store.list_follow_ups(prospect.id)]
        assert due == [11, 15, 20]

    @pytest.mark.asyncio
    async def test_follow_up_needs_existing_prospect(self, store):
        with pytest.raises(StorageError):
            await store.add_follow_up(FollowUpAction(
                prospect_id="ghost", due_date=date(2026, 3, 12), assigned_to="grace"
            ))

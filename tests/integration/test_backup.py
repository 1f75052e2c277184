"""
Snapshot export/import between two independent SQLite stores.
"""
import json
from datetime import date

import pytest
import pytest_asyncio

from langcrm import __version__
from langcrm.backup import (
    APP_NAME,
    export_snapshot,
    import_snapshot,
    read_snapshot,
    validate_snapshot,
    write_snapshot,
)
from langcrm.errors import ValidationFailed
from langcrm.models import Student
from langcrm.store.sql_store import SQLStore
from tests.fixtures.crm_data import (
    STUDENT_DETAILS,
    TODAY,
    TRANSLATION_DONE,
    class_form,
    training_form,
    translation_form,
)


@pytest_asyncio.fixture
async def populated(crm):
    """A CRM with one of everything."""
    lead = await crm.prospects.add_prospect(training_form())
    student = await crm.prospects.convert_to_student(lead.id, STUDENT_DETAILS)
    job = await crm.prospects.add_prospect(translation_form())
    await crm.prospects.complete_service(job.id, TRANSLATION_DONE)
    open_lead = await crm.prospects.add_prospect(training_form(name="Joel Okello"))
    await crm.tasks.add_follow_up(open_lead.id, TODAY, "grace")
    await crm.tasks.add_communication({"title": "Pay rent", "due_date": TODAY})
    french = await crm.enrollment.create_class(class_form())
    await crm.enrollment.assign_student_to_class(student.id, french.class_id)
    await crm.finance.record_payment({
        "payer_name": student.name,
        "client_id": student.id,
        "payment_date": date(2026, 3, 6),
        "amount": 150000,
        "currency": "UGX",
        "service": "Language Training",
    })
    await crm.finance.record_expenditure({
        "payee_name": "Landlord", "expenditure_date": date(2026, 3, 1), "amount": 800000,
    })
    return crm


@pytest_asyncio.fixture
async def target(tmp_path):
    store = SQLStore(f"sqlite+aiosqlite:///{tmp_path / 'restore.db'}")
    await store.init()
    yield store
    await store.close()


class TestExport:
    @pytest.mark.asyncio
    async def test_metadata_and_sections(self, populated):
        snapshot = await export_snapshot(populated.store, populated.attribution)
        metadata = snapshot["metadata"]
        assert metadata["version"] == __version__
        assert metadata["app_name"] == APP_NAME
        assert metadata["exported_by_username"] == "grace"
        assert {k: len(v) for k, v in snapshot["data"].items()} == {
            "prospects": 3,
            "students": 1,
            "classes": 1,
            "payments": 1,
            "expenditures": 1,
            "follow_ups": 1,
            "communications": 1,
        }
        json.dumps(snapshot)  # fully JSON-serialisable


class TestImport:
    @pytest.mark.asyncio
    async def test_restore_into_empty_store(self, populated, target, tmp_path):
        snapshot = await export_snapshot(populated.store, populated.attribution)
        path = write_snapshot(snapshot, tmp_path / "backups" / "crm.json")

        result = await import_snapshot(target, read_snapshot(path))

        assert result.success
        assert sum(result.imported.values()) == 9
        assert result.skipped == 0
        restored = await target.list_students()
        assert [s.student_id for s in restored] == ["STU-050326-0001"]
        jobs = await target.get_completed_jobs()
        assert {p.name: p.total_fee for p in jobs} == {"Kato Brian": 50000, "Amina Nakato": 0}
        classes = await target.list_classes()
        assert classes[0].student_ids == [restored[0].id]

    @pytest.mark.asyncio
    async def test_second_import_skips_everything(self, populated, target):
        snapshot = await export_snapshot(populated.store, populated.attribution)
        await import_snapshot(target, snapshot)
        again = await import_snapshot(target, snapshot)
        assert sum(again.imported.values()) == 0
        assert again.skipped == 9

    @pytest.mark.asyncio
    async def test_restored_ids_are_not_reissued(self, populated, target):
        await import_snapshot(target, await export_snapshot(populated.store, populated.attribution))
        fresh = await target.add_student(Student(name="New Student", registration_date=date(2026, 3, 7)))
        assert fresh.student_id == "STU-070326-0002"

    @pytest.mark.asyncio
    async def test_bad_records_reported_not_fatal(self, populated, target):
        snapshot = await export_snapshot(populated.store, populated.attribution)
        snapshot["data"]["expenditures"].append({"payee_name": "Broken", "amount": -1})
        snapshot["data"]["follow_ups"].append({
            "id": "orphan", "prospect_id": "ghost", "due_date": "2026-03-10", "assigned_to": "grace",
        })

        result = await import_snapshot(target, snapshot)

        assert not result.success
        assert len(result.errors) == 2
        assert any("Broken" in e for e in result.errors)
        assert any("orphan" in e for e in result.errors)
        assert result.imported["prospects"] == 3


class TestValidation:
    def test_missing_sections(self):
        with pytest.raises(ValidationFailed) as exc_info:
            validate_snapshot({"metadata": {"version": "1.0.0"}, "data": {"prospects": []}})
        errors = exc_info.value.errors
        assert "metadata.app_name" in errors
        assert "data.students" in errors
        assert "data.follow_ups" not in errors

    def test_not_an_object(self):
        with pytest.raises(ValidationFailed):
            validate_snapshot([])

    def test_invalid_json_file(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        with pytest.raises(ValidationFailed) as exc_info:
            read_snapshot(path)
        assert "snapshot" in exc_info.value.errors

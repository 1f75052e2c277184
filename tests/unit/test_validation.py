"""Tests for prospect intake validation."""
import pytest

from langcrm.errors import ValidationFailed
from langcrm.models import LanguageTrainingDetails, ProspectStatus, TranslationDetails
from langcrm.prospects.validation import ProspectForm, validate_prospect_form
from tests.fixtures.crm_data import interpretation_form, training_form, translation_form


def _errors(data) -> dict:
    with pytest.raises(ValidationFailed) as exc_info:
        validate_prospect_form(data)
    return exc_info.value.errors


class TestValidForms:
    @pytest.mark.parametrize("builder", [training_form, translation_form, interpretation_form])
    def test_each_service_accepted(self, builder):
        form = validate_prospect_form(builder())
        assert isinstance(form, ProspectForm)

    def test_name_is_trimmed(self):
        form = validate_prospect_form(training_form(name="  Amina Nakato  "))
        assert form.name == "Amina Nakato"

    def test_blank_contact_fields_become_none(self):
        form = validate_prospect_form(training_form(email="   "))
        assert form.email is None
        assert form.phone == "+256 700 123456"

    def test_languages_are_trimmed(self):
        form = validate_prospect_form(translation_form(details={
            "service": "Doc Translation",
            "source_language": " English ",
            "target_language": "French ",
        }))
        assert isinstance(form.details, TranslationDetails)
        assert form.details.source_language == "English"
        assert form.details.target_language == "French"

    def test_blank_training_languages_dropped(self):
        form = validate_prospect_form(training_form(details={
            "service": "Language Training",
            "training_languages": ["French", "  ", "German"],
        }))
        assert isinstance(form.details, LanguageTrainingDetails)
        assert form.details.training_languages == ["French", "German"]

    def test_accepts_form_instance(self):
        form = ProspectForm.model_validate(translation_form())
        assert validate_prospect_form(form).name == "Kato Brian"

    def test_to_prospect_starts_inquired(self):
        prospect = validate_prospect_form(training_form()).to_prospect()
        assert prospect.status == ProspectStatus.INQUIRED
        assert prospect.converted_on is None
        assert prospect.name == "Amina Nakato"


class TestFieldRules:
    @pytest.mark.parametrize("name", ["A", " B ", "x" * 101])
    def test_name_length(self, name):
        assert "name" in _errors(training_form(name=name))

    def test_bad_email(self):
        assert _errors(training_form(email="amina-at-example"))["email"] == "Invalid email address"

    def test_bad_phone(self):
        assert _errors(training_form(phone="call me"))["phone"] == "Invalid phone number"

    def test_notes_too_long(self):
        assert "notes" in _errors(training_form(notes="n" * 1001))

    def test_unknown_service(self):
        errors = _errors(training_form(details={"service": "Catering"}))
        assert "details" in errors

    def test_unknown_contact_method(self):
        assert "contact_method" in _errors(training_form(contact_method="Pigeon"))


class TestCrossFieldRules:
    def test_email_or_phone_required(self):
        errors = _errors(training_form(email=None, phone=""))
        assert errors == {"email": "Provide an email address or a phone number"}

    def test_training_needs_a_language(self):
        errors = _errors(training_form(details={"service": "Language Training", "training_languages": []}))
        assert errors == {"training_languages": "Select at least one training language"}

    def test_source_and_target_must_differ(self):
        errors = _errors(interpretation_form(details={
            "service": "Interpretation",
            "source_language": "German",
            "target_language": "german",
        }))
        assert errors == {"target_language": "Source and target languages must differ"}

    def test_missing_language(self):
        errors = _errors(translation_form(details={
            "service": "Doc Translation",
            "source_language": "  ",
            "target_language": "French",
        }))
        assert errors == {"source_language": "Source language is required"}

    def test_all_cross_field_problems_reported_together(self):
        errors = _errors(translation_form(
            phone=None,
            email=None,
            details={"service": "Doc Translation", "source_language": "", "target_language": ""},
        ))
        assert set(errors) == {"email", "source_language", "target_language"}

    def test_message_lists_fields(self):
        with pytest.raises(ValidationFailed, match="email: Provide an email"):
            validate_prospect_form(training_form(email=None, phone=None))

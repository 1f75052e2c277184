"""Intake validation for new and edited prospects.

Single-field rules live on the pydantic model; rules spanning fields
(email-or-phone, language pairs) are checked afterwards so every problem
comes back keyed by the field the user has to fix.
"""

import re
from datetime import date
from typing import Any, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from langcrm.errors import ValidationFailed
from langcrm.models import (
    ContactMethod,
    InterpretationDetails,
    LanguageTrainingDetails,
    Prospect,
    ServiceDetails,
    TranslationDetails,
)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PHONE_RE = re.compile(r"^[0-9\s\-+()]+$")


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class ProspectForm(BaseModel):
    """What a user submits when recording or editing an inquiry."""

    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    contact_method: ContactMethod
    date_of_contact: date = Field(default_factory=date.today)
    notes: str = ""
    details: ServiceDetails

    @field_validator("name")
    @classmethod
    def _name_length(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Name must be at least 2 characters")
        if len(v) > 100:
            raise ValueError("Name must be at most 100 characters")
        return v

    @field_validator("email")
    @classmethod
    def _email_format(cls, v: Optional[str]) -> Optional[str]:
        v = _blank_to_none(v)
        if v is not None and not EMAIL_RE.match(v):
            raise ValueError("Invalid email address")
        return v

    @field_validator("phone")
    @classmethod
    def _phone_format(cls, v: Optional[str]) -> Optional[str]:
        v = _blank_to_none(v)
        if v is not None and not PHONE_RE.match(v):
            raise ValueError("Invalid phone number")
        return v

    @field_validator("notes")
    @classmethod
    def _notes_length(cls, v: str) -> str:
        if len(v) > 1000:
            raise ValueError("Notes must be at most 1000 characters")
        return v

    def to_prospect(self) -> Prospect:
        return Prospect(**self.model_dump(exclude={"details"}), details=self.details)


def _cross_field_errors(form: ProspectForm) -> dict[str, str]:
    errors: dict[str, str] = {}
    if not form.email and not form.phone:
        errors["email"] = "Provide an email address or a phone number"

    details = form.details
    if isinstance(details, LanguageTrainingDetails):
        if not details.training_languages:
            errors["training_languages"] = "Select at least one training language"
    elif isinstance(details, (TranslationDetails, InterpretationDetails)):
        source, target = details.source_language, details.target_language
        if not source:
            errors["source_language"] = "Source language is required"
        if not target:
            errors["target_language"] = "Target language is required"
        if source and target and source.lower() == target.lower():
            errors["target_language"] = "Source and target languages must differ"
    return errors


def _normalize_details(form: ProspectForm) -> ProspectForm:
    details = form.details
    if isinstance(details, LanguageTrainingDetails):
        languages = [lang.strip() for lang in details.training_languages if lang.strip()]
        details = details.model_copy(update={"training_languages": languages})
    else:
        # Completion records are only written by complete_service
        details = details.model_copy(update={
            "source_language": details.source_language.strip(),
            "target_language": details.target_language.strip(),
            "completion": None,
        })
    return form.model_copy(update={"details": details})


def validate_prospect_form(data: Union[ProspectForm, dict[str, Any]]) -> ProspectForm:
    """Return a clean form or raise ValidationFailed with field-level reasons."""
    if isinstance(data, ProspectForm):
        data = data.model_dump()
    try:
        form = ProspectForm.model_validate(data)
    except ValidationError as e:
        raise ValidationFailed.from_pydantic(e) from e
    form = _normalize_details(form)
    errors = _cross_field_errors(form)
    if errors:
        raise ValidationFailed(errors)
    return form

"""Full-data export and import as a single JSON snapshot.

Snapshot layout::

    {
      "metadata": {"export_date", "exported_by", "exported_by_username",
                   "version", "app_name"},
      "data": {"prospects": [...], "students": [...], "classes": [...],
               "payments": [...], "expenditures": [...],
               "follow_ups": [...], "communications": [...]}
    }

Import only adds: records whose id already exists are skipped, so
importing the same file twice is harmless.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Union

from pydantic import BaseModel, ValidationError

from langcrm import __version__
from langcrm.attribution import AttributionProvider
from langcrm.errors import CRMError, ValidationFailed
from langcrm.models import (
    Communication,
    Expenditure,
    FollowUpAction,
    LanguageClass,
    Payment,
    Prospect,
    Student,
)
from langcrm.store.base import DataStore

logger = logging.getLogger(__name__)

APP_NAME = "Prospect CRM"
REQUIRED_SECTIONS = ("prospects", "students", "classes", "payments", "expenditures")
OPTIONAL_SECTIONS = ("follow_ups", "communications")

# section -> (model, id field); parents before children
_SECTIONS: dict[str, tuple[type[BaseModel], str]] = {
    "prospects": (Prospect, "id"),
    "students": (Student, "id"),
    "classes": (LanguageClass, "class_id"),
    "payments": (Payment, "payment_id"),
    "expenditures": (Expenditure, "expenditure_id"),
    "follow_ups": (FollowUpAction, "id"),
    "communications": (Communication, "id"),
}


@dataclass
class ImportResult:
    imported: dict[str, int] = field(default_factory=lambda: {s: 0 for s in _SECTIONS})
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


def _dump(items) -> list[dict]:
    return [item.model_dump(mode="json") for item in items]


async def export_snapshot(store: DataStore, attribution: AttributionProvider) -> dict[str, Any]:
    actor = await attribution.current_actor()
    prospects = await store.list_prospects()
    snapshot = {
        "metadata": {
            "export_date": datetime.now(timezone.utc).isoformat(),
            "exported_by": actor.id,
            "exported_by_username": actor.username,
            "version": __version__,
            "app_name": APP_NAME,
        },
        "data": {
            "prospects": _dump(prospects),
            "students": _dump(await store.list_students()),
            "classes": _dump(await store.list_classes()),
            "payments": _dump(await store.list_payments()),
            "expenditures": _dump(await store.list_expenditures()),
            "follow_ups": _dump(await store.list_follow_ups()),
            "communications": _dump(await store.list_communications()),
        },
    }
    counts = {k: len(v) for k, v in snapshot["data"].items()}
    logger.info(f"Exported snapshot: {counts}")
    return snapshot


def validate_snapshot(snapshot: Any) -> None:
    """Structural check; raises ValidationFailed naming the first problems found."""
    errors: dict[str, str] = {}
    if not isinstance(snapshot, dict):
        raise ValidationFailed.single("snapshot", "Snapshot must be a JSON object")
    metadata, data = snapshot.get("metadata"), snapshot.get("data")
    if not isinstance(metadata, dict):
        errors["metadata"] = "Missing metadata"
    else:
        for key in ("version", "app_name"):
            if not metadata.get(key):
                errors[f"metadata.{key}"] = "Missing value"
    if not isinstance(data, dict):
        errors["data"] = "Missing data"
    else:
        for section in REQUIRED_SECTIONS:
            if not isinstance(data.get(section), list):
                errors[f"data.{section}"] = "Must be a list"
        for section in OPTIONAL_SECTIONS:
            if section in data and not isinstance(data[section], list):
                errors[f"data.{section}"] = "Must be a list"
    if errors:
        raise ValidationFailed(errors)


async def _existing_ids(store: DataStore, section: str, id_field: str) -> set[str]:
    listing = {
        "prospects": store.list_prospects,
        "students": store.list_students,
        "classes": store.list_classes,
        "payments": store.list_payments,
        "expenditures": store.list_expenditures,
        "follow_ups": store.list_follow_ups,
        "communications": store.list_communications,
    }[section]
    return {getattr(item, id_field) for item in await listing()}


async def _add(store: DataStore, section: str, record: BaseModel) -> None:
    adder = {
        "prospects": store.add_prospect,
        "students": store.add_student,
        "classes": store.add_class,
        "payments": store.add_payment,
        "expenditures": store.add_expenditure,
        "follow_ups": store.add_follow_up,
        "communications": store.add_communication,
    }[section]
    await adder(record)


async def import_snapshot(store: DataStore, snapshot: dict[str, Any]) -> ImportResult:
    """Add every record not already present. Per-record failures are collected."""
    validate_snapshot(snapshot)
    result = ImportResult()
    data = snapshot["data"]

    for section, (model_cls, id_field) in _SECTIONS.items():
        records = data.get(section) or []
        if not records:
            continue
        existing = await _existing_ids(store, section, id_field)
        for raw in records:
            if isinstance(raw, dict):
                label = next(
                    (raw[key] for key in ("name", "title", "payer_name", "payee_name", id_field) if raw.get(key)),
                    None,
                )
            else:
                label = repr(raw)
            try:
                record = model_cls.model_validate(raw)
            except ValidationError as e:
                result.errors.append(f"Invalid {section} record {label}: {ValidationFailed.from_pydantic(e)}")
                continue
            record_id = getattr(record, id_field)
            if record_id in existing:
                result.skipped += 1
                continue
            try:
                await _add(store, section, record)
            except CRMError as e:
                result.errors.append(f"Failed to import {section} record {label}: {e}")
                continue
            existing.add(record_id)
            result.imported[section] += 1

    logger.info(
        f"Import finished: {result.imported}, skipped {result.skipped}, "
        f"{len(result.errors)} errors"
    )
    for error in result.errors:
        logger.warning(error)
    return result


def write_snapshot(snapshot: dict[str, Any], path: Union[str, Path]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(snapshot, f, indent=2, ensure_ascii=False)
    return path


def read_snapshot(path: Union[str, Path]) -> dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            snapshot = json.load(f)
    except json.JSONDecodeError as e:
        raise ValidationFailed.single("snapshot", f"Not valid JSON: {e}") from e
    validate_snapshot(snapshot)
    return snapshot

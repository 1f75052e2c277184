"""Remote data store over the CRM REST API.

Uses a single httpx.AsyncClient with bearer-token auth. Payloads are the
models' JSON form. The API has no multi-record transactions, so
``apply_enrollment_delta`` is best-effort: it issues one enroll/unenroll
call per class and, on failure, reverses the calls already applied before
re-raising. A failing reversal is logged and leaves the roster partially
updated.
"""

import logging
from datetime import datetime
from typing import Any, Iterable, Optional

import httpx
from pydantic import ValidationError

from langcrm.errors import CRMError, NotFoundError, StorageError
from langcrm.models import (
    Actor,
    Communication,
    Expenditure,
    FollowUpAction,
    LanguageClass,
    Payment,
    Prospect,
    ProspectStatus,
    SearchCriteria,
    Student,
)
from langcrm.store.base import DataStore, filter_prospects, sort_completed

logger = logging.getLogger(__name__)


class APIStore(DataStore):
    """DataStore backed by the remote REST API."""

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    # --- HTTP plumbing ---

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Issue a request; 404 is returned to the caller, other errors raise."""
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise StorageError(f"{method} {path} failed: {e}") from e
        if resp.is_error and resp.status_code != 404:
            raise StorageError(
                f"{method} {path} returned {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )
        logger.debug(f"{method} {path} -> {resp.status_code}")
        return resp

    @staticmethod
    def _parse(resp: httpx.Response, model_cls, fallback=None):
        if not resp.content:
            return fallback
        try:
            return model_cls.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            raise StorageError(f"Unexpected response from {resp.request.url}: {e}") from e

    async def _fetch_one(self, path: str, model_cls):
        resp = await self._send("GET", path)
        if resp.status_code == 404:
            return None
        return self._parse(resp, model_cls)

    async def _fetch_list(self, path: str, model_cls, params: Optional[dict] = None) -> list:
        resp = await self._send("GET", path, params={k: v for k, v in (params or {}).items() if v})
        if resp.status_code == 404:
            raise StorageError(f"GET {path} returned 404", status_code=404)
        try:
            return [model_cls.model_validate(item) for item in resp.json()]
        except (ValueError, TypeError, ValidationError) as e:
            raise StorageError(f"Unexpected response from {path}: {e}") from e

    async def _create(self, path: str, model):
        resp = await self._send("POST", path, json=model.model_dump(mode="json"))
        if resp.status_code == 404:
            raise StorageError(f"POST {path} returned 404", status_code=404)
        return self._parse(resp, type(model), fallback=model)

    async def _replace(self, path: str, model, entity: str, entity_id: str):
        resp = await self._send("PUT", f"{path}/{entity_id}", json=model.model_dump(mode="json"))
        if resp.status_code == 404:
            raise NotFoundError(entity, entity_id)
        return self._parse(resp, type(model), fallback=model)

    async def _remove(self, path: str, entity: str, entity_id: str) -> None:
        resp = await self._send("DELETE", f"{path}/{entity_id}")
        if resp.status_code == 404:
            raise NotFoundError(entity, entity_id)

    # --- Prospects ---

    async def add_prospect(self, prospect: Prospect) -> Prospect:
        return await self._create("/prospects", prospect)

    async def get_prospect(self, prospect_id: str) -> Optional[Prospect]:
        return await self._fetch_one(f"/prospects/{prospect_id}", Prospect)

    async def list_prospects(self) -> list[Prospect]:
        return await self._fetch_list("/prospects", Prospect)

    async def update_prospect(self, prospect: Prospect) -> Prospect:
        return await self._replace("/prospects", prospect, "prospect", prospect.id)

    async def delete_prospect(self, prospect_id: str) -> None:
        # Server cascades to follow-ups and linked communications
        await self._remove("/prospects", "prospect", prospect_id)

    async def search_prospects(
        self, criteria: Optional[SearchCriteria] = None, now: Optional[datetime] = None
    ) -> list[Prospect]:
        criteria = criteria or SearchCriteria()
        params = {
            "status": ProspectStatus.INQUIRED.value,
            "search": criteria.search_term.strip(),
            "contact_method": criteria.contact_method.value if criteria.contact_method else None,
            "service": criteria.service.value if criteria.service else None,
        }
        # Server-side narrowing is optional; local filtering is authoritative
        prospects = await self._fetch_list("/prospects", Prospect, params)
        return filter_prospects(prospects, criteria, now)

    async def get_completed_jobs(self) -> list[Prospect]:
        prospects = await self._fetch_list(
            "/prospects", Prospect, {"status": ProspectStatus.CONVERTED.value}
        )
        return sort_completed(prospects)

    # --- Follow-ups ---

    async def add_follow_up(self, follow_up: FollowUpAction) -> FollowUpAction:
        return await self._create("/followups", follow_up)

    async def get_follow_up(self, follow_up_id: str) -> Optional[FollowUpAction]:
        return await self._fetch_one(f"/followups/{follow_up_id}", FollowUpAction)

    async def list_follow_ups(self, prospect_id: Optional[str] = None) -> list[FollowUpAction]:
        items = await self._fetch_list("/followups", FollowUpAction, {"prospect_id": prospect_id})
        if prospect_id:
            items = [f for f in items if f.prospect_id == prospect_id]
        return sorted(items, key=lambda f: f.due_date)

    async def update_follow_up(self, follow_up: FollowUpAction) -> FollowUpAction:
        return await self._replace("/followups", follow_up, "follow-up", follow_up.id)

    async def delete_follow_up(self, follow_up_id: str) -> None:
        await self._remove("/followups", "follow-up", follow_up_id)

    # --- Communications ---

    async def add_communication(self, communication: Communication) -> Communication:
        return await self._create("/communications", communication)

    async def get_communication(self, communication_id: str) -> Optional[Communication]:
        return await self._fetch_one(f"/communications/{communication_id}", Communication)

    async def list_communications(self) -> list[Communication]:
        items = await self._fetch_list("/communications", Communication)
        return sorted(items, key=lambda c: c.due_date)

    async def update_communication(self, communication: Communication) -> Communication:
        return await self._replace("/communications", communication, "communication", communication.id)

    async def delete_communication(self, communication_id: str) -> None:
        await self._remove("/communications", "communication", communication_id)

    # --- Students ---

    async def add_student(self, student: Student) -> Student:
        # The server allocates student_id under its own lock
        created = await self._create("/students", student)
        if not created.student_id:
            raise StorageError(f"Server did not assign a student_id to {student.id}")
        return created

    async def get_student(self, student_id: str) -> Optional[Student]:
        return await self._fetch_one(f"/students/{student_id}", Student)

    async def list_students(self) -> list[Student]:
        items = await self._fetch_list("/students", Student)
        return sorted(items, key=lambda s: s.name)

    async def update_student(self, student: Student) -> Student:
        return await self._replace("/students", student, "student", student.id)

    async def delete_student(self, student_id: str) -> None:
        await self._remove("/students", "student", student_id)

    # --- Classes ---

    async def add_class(self, language_class: LanguageClass) -> LanguageClass:
        return await self._create("/classes", language_class)

    async def get_class(self, class_id: str) -> Optional[LanguageClass]:
        return await self._fetch_one(f"/classes/{class_id}", LanguageClass)

    async def list_classes(self) -> list[LanguageClass]:
        items = await self._fetch_list("/classes", LanguageClass)
        return sorted(items, key=lambda c: c.name)

    async def update_class(self, language_class: LanguageClass) -> LanguageClass:
        return await self._replace("/classes", language_class, "class", language_class.class_id)

    async def delete_class(self, class_id: str) -> None:
        await self._remove("/classes", "class", class_id)

    async def _post_enrollment(self, class_id: str, action: str, student_id: str) -> None:
        resp = await self._send(
            "POST", f"/classes/{class_id}/{action}", json={"student_id": student_id}
        )
        if resp.status_code == 404:
            raise NotFoundError("class", class_id)

    async def apply_enrollment_delta(
        self,
        student_id: str,
        add: Iterable[str],
        remove: Iterable[str],
        actor: Optional[Actor] = None,
    ) -> None:
        # actor is stamped server-side from the bearer token
        plan = [(cid, "enroll") for cid in sorted(set(add))]
        plan += [(cid, "unenroll") for cid in sorted(set(remove))]
        applied: list[tuple[str, str]] = []
        try:
            for class_id, action in plan:
                await self._post_enrollment(class_id, action, student_id)
                applied.append((class_id, action))
        except CRMError:
            logger.warning(
                f"Enrollment update for {student_id} failed after "
                f"{len(applied)}/{len(plan)} calls, reverting"
            )
            await self._revert(student_id, applied)
            raise
        logger.info(f"Enrollment for {student_id}: {len(plan)} roster changes applied")

    async def _revert(self, student_id: str, applied: list[tuple[str, str]]) -> None:
        for class_id, action in reversed(applied):
            undo = "unenroll" if action == "enroll" else "enroll"
            try:
                await self._post_enrollment(class_id, undo, student_id)
            except CRMError as e:
                logger.error(f"Could not revert {action} of {student_id} in {class_id}: {e}")

    # --- Payments ---

    async def add_payment(self, payment: Payment) -> Payment:
        return await self._create("/payments", payment)

    async def get_payment(self, payment_id: str) -> Optional[Payment]:
        return await self._fetch_one(f"/payments/{payment_id}", Payment)

    async def list_payments(self, client_id: Optional[str] = None) -> list[Payment]:
        items = await self._fetch_list("/payments", Payment, {"client_id": client_id})
        if client_id:
            items = [p for p in items if p.client_id == client_id]
        return sorted(items, key=lambda p: p.payment_date, reverse=True)

    async def update_payment(self, payment: Payment) -> Payment:
        return await self._replace("/payments", payment, "payment", payment.payment_id)

    async def delete_payment(self, payment_id: str) -> None:
        await self._remove("/payments", "payment", payment_id)

    # --- Expenditures ---

    async def add_expenditure(self, expenditure: Expenditure) -> Expenditure:
        return await self._create("/expenditures", expenditure)

    async def get_expenditure(self, expenditure_id: str) -> Optional[Expenditure]:
        return await self._fetch_one(f"/expenditures/{expenditure_id}", Expenditure)

    async def list_expenditures(self) -> list[Expenditure]:
        items = await self._fetch_list("/expenditures", Expenditure)
        return sorted(items, key=lambda e: e.expenditure_date, reverse=True)

    async def update_expenditure(self, expenditure: Expenditure) -> Expenditure:
        return await self._replace("/expenditures", expenditure, "expenditure", expenditure.expenditure_id)

    async def delete_expenditure(self, expenditure_id: str) -> None:
        await self._remove("/expenditures", "expenditure", expenditure_id)

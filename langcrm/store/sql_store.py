"""Embedded data store on SQLAlchemy async (SQLite by default).

Every public method is one transaction: it commits on success and rolls
back on any error, so multi-record operations (enrollment deltas,
cascading deletes, student-id allocation) are all-or-nothing.
"""

import asyncio
import enum
import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import AsyncGenerator, Iterable, Optional

from pydantic import BaseModel
from sqlalchemy import delete, select
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from langcrm.errors import NotFoundError, StorageError
from langcrm.models import (
    Actor,
    Communication,
    Expenditure,
    FollowUpAction,
    LanguageClass,
    Payment,
    Prospect,
    Student,
    format_student_id,
    parse_student_sequence,
)
from langcrm.store.base import DataStore
from langcrm.store.connection import create_engine, create_session_factory
from langcrm.store.orm import (
    Base,
    ClassRow,
    CommunicationRow,
    ExpenditureRow,
    FollowUpRow,
    PaymentRow,
    ProspectRow,
    StudentRow,
    StudentSequenceRow,
)

logger = logging.getLogger(__name__)


def _column_value(value):
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [_column_value(v) for v in value]
    return value


def _row_values(model: BaseModel, row_cls) -> dict:
    """Map model fields onto the table's columns by name."""
    fields = type(model).model_fields
    values = {}
    for column in row_cls.__table__.columns:
        if column.key in fields:
            values[column.key] = _column_value(getattr(model, column.key))
    return values


def _to_model(row, model_cls):
    data = {c.key: getattr(row, c.key) for c in row.__table__.columns}
    return model_cls.model_validate(data)


class SQLStore(DataStore):
    """DataStore backed by a relational database."""

    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url
        self._engine = create_engine(database_url, echo=echo)
        self._session_factory = create_session_factory(self._engine)
        # Serializes student-id allocation within this process
        self._sequence_lock = asyncio.Lock()

    async def init(self) -> None:
        """Create all tables. Safe to call multiple times (IF NOT EXISTS)."""
        url = make_url(self._engine.url)
        if url.get_backend_name() == "sqlite" and url.database not in (None, "", ":memory:"):
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            raise StorageError(f"Could not initialise database: {e}") from e
        logger.debug(f"Database ready at {url.render_as_string(hide_password=True)}")

    async def close(self) -> None:
        await self._engine.dispose()

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession, None]:
        """Session with automatic commit/rollback; DB errors become StorageError."""
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise StorageError(f"Database error: {e}") from e
            except Exception:
                await session.rollback()
                raise

    # --- Generic CRUD ---

    async def _add(self, row_cls, model: BaseModel, **extra):
        async with self._session() as session:
            session.add(row_cls(**_row_values(model, row_cls), **extra))
        return model

    async def _get(self, row_cls, model_cls, key: str):
        async with self._session() as session:
            row = await session.get(row_cls, key)
            return _to_model(row, model_cls) if row is not None else None

    async def _list(self, row_cls, model_cls, *order_by, where=None) -> list:
        stmt = select(row_cls)
        if where is not None:
            stmt = stmt.where(where)
        if order_by:
            stmt = stmt.order_by(*order_by)
        async with self._session() as session:
            result = await session.execute(stmt)
            return [_to_model(row, model_cls) for row in result.scalars()]

    async def _update(self, row_cls, model: BaseModel, key: str, entity: str, **extra):
        async with self._session() as session:
            row = await session.get(row_cls, key)
            if row is None:
                raise NotFoundError(entity, key)
            for column, value in {**_row_values(model, row_cls), **extra}.items():
                setattr(row, column, value)
        return model

    async def _delete(self, row_cls, key: str, entity: str) -> None:
        async with self._session() as session:
            row = await session.get(row_cls, key)
            if row is None:
                raise NotFoundError(entity, key)
            await session.delete(row)

    # --- Prospects ---

    async def add_prospect(self, prospect: Prospect) -> Prospect:
        return await self._add(ProspectRow, prospect, service_type=prospect.service_type.value)

    async def get_prospect(self, prospect_id: str) -> Optional[Prospect]:
        return await self._get(ProspectRow, Prospect, prospect_id)

    async def list_prospects(self) -> list[Prospect]:
        return await self._list(ProspectRow, Prospect, ProspectRow.date_of_contact.desc())

    async def update_prospect(self, prospect: Prospect) -> Prospect:
        return await self._update(
            ProspectRow, prospect, prospect.id, "prospect",
            service_type=prospect.service_type.value,
        )

    async def delete_prospect(self, prospect_id: str) -> None:
        async with self._session() as session:
            row = await session.get(ProspectRow, prospect_id)
            if row is None:
                raise NotFoundError("prospect", prospect_id)
            await session.execute(delete(FollowUpRow).where(FollowUpRow.prospect_id == prospect_id))
            await session.execute(
                delete(CommunicationRow).where(CommunicationRow.prospect_id == prospect_id)
            )
            await session.delete(row)
        logger.info(f"Deleted prospect {prospect_id} with its follow-ups")

    # --- Follow-ups ---

    async def add_follow_up(self, follow_up: FollowUpAction) -> FollowUpAction:
        return await self._add(FollowUpRow, follow_up)

    async def get_follow_up(self, follow_up_id: str) -> Optional[FollowUpAction]:
        return await self._get(FollowUpRow, FollowUpAction, follow_up_id)

    async def list_follow_ups(self, prospect_id: Optional[str] = None) -> list[FollowUpAction]:
        where = FollowUpRow.prospect_id == prospect_id if prospect_id else None
        return await self._list(FollowUpRow, FollowUpAction, FollowUpRow.due_date, where=where)

    async def update_follow_up(self, follow_up: FollowUpAction) -> FollowUpAction:
        return await self._update(FollowUpRow, follow_up, follow_up.id, "follow-up")

    async def delete_follow_up(self, follow_up_id: str) -> None:
        await self._delete(FollowUpRow, follow_up_id, "follow-up")

    # --- Communications ---

    async def add_communication(self, communication: Communication) -> Communication:
        return await self._add(CommunicationRow, communication)

    async def get_communication(self, communication_id: str) -> Optional[Communication]:
        return await self._get(CommunicationRow, Communication, communication_id)

    async def list_communications(self) -> list[Communication]:
        return await self._list(CommunicationRow, Communication, CommunicationRow.due_date)

    async def update_communication(self, communication: Communication) -> Communication:
        return await self._update(CommunicationRow, communication, communication.id, "communication")

    async def delete_communication(self, communication_id: str) -> None:
        await self._delete(CommunicationRow, communication_id, "communication")

    # --- Students ---

    async def _sequence_counter(self, session: AsyncSession, year: int) -> StudentSequenceRow:
        counter = await session.get(StudentSequenceRow, year)
        if counter is None:
            # First allocation this year: continue after any ids already issued
            result = await session.execute(
                select(StudentRow.student_id).where(
                    StudentRow.registration_date >= date(year, 1, 1),
                    StudentRow.registration_date <= date(year, 12, 31),
                )
            )
            issued = [parse_student_sequence(s) for s in result.scalars()]
            counter = StudentSequenceRow(year=year, last_value=max((s for s in issued if s), default=0))
            session.add(counter)
        return counter

    async def add_student(self, student: Student) -> Student:
        year = student.registration_date.year
        async with self._sequence_lock:
            async with self._session() as session:
                counter = await self._sequence_counter(session, year)
                if student.student_id:
                    # Restored record keeps its id; never hand that number out again
                    sequence = parse_student_sequence(student.student_id) or 0
                    counter.last_value = max(counter.last_value, sequence)
                else:
                    counter.last_value += 1
                    student.student_id = format_student_id(student.registration_date, counter.last_value)
                session.add(StudentRow(**_row_values(student, StudentRow)))
        logger.debug(f"Stored student {student.student_id} ({student.name})")
        return student

    async def get_student(self, student_id: str) -> Optional[Student]:
        return await self._get(StudentRow, Student, student_id)

    async def list_students(self) -> list[Student]:
        return await self._list(StudentRow, Student, StudentRow.name)

    async def update_student(self, student: Student) -> Student:
        return await self._update(StudentRow, student, student.id, "student")

    async def delete_student(self, student_id: str) -> None:
        await self._delete(StudentRow, student_id, "student")

    # --- Classes ---

    async def add_class(self, language_class: LanguageClass) -> LanguageClass:
        return await self._add(ClassRow, language_class)

    async def get_class(self, class_id: str) -> Optional[LanguageClass]:
        return await self._get(ClassRow, LanguageClass, class_id)

    async def list_classes(self) -> list[LanguageClass]:
        return await self._list(ClassRow, LanguageClass, ClassRow.name)

    async def update_class(self, language_class: LanguageClass) -> LanguageClass:
        return await self._update(ClassRow, language_class, language_class.class_id, "class")

    async def delete_class(self, class_id: str) -> None:
        await self._delete(ClassRow, class_id, "class")

    async def apply_enrollment_delta(
        self,
        student_id: str,
        add: Iterable[str],
        remove: Iterable[str],
        actor: Optional[Actor] = None,
    ) -> None:
        add, remove = set(add), set(remove)
        targets = add | remove
        if not targets:
            return
        async with self._session() as session:
            result = await session.execute(select(ClassRow).where(ClassRow.class_id.in_(targets)))
            rows = {row.class_id: row for row in result.scalars()}
            missing = sorted(targets - rows.keys())
            if missing:
                raise NotFoundError("class", missing[0])

            for class_id in sorted(targets):
                row = rows[class_id]
                roster = [s for s in (row.student_ids or []) if s != student_id]
                if class_id in add:
                    roster.append(student_id)
                # Reassign so the JSON column is flagged dirty
                row.student_ids = roster
                if actor is not None:
                    row.modified_by = actor.id
                    row.modified_by_username = actor.username
                    row.modified_at = datetime.now(timezone.utc)
        logger.info(
            f"Enrollment for {student_id}: +{sorted(add)} -{sorted(remove)}"
        )

    # --- Payments ---

    async def add_payment(self, payment: Payment) -> Payment:
        return await self._add(PaymentRow, payment)

    async def get_payment(self, payment_id: str) -> Optional[Payment]:
        return await self._get(PaymentRow, Payment, payment_id)

    async def list_payments(self, client_id: Optional[str] = None) -> list[Payment]:
        where = PaymentRow.client_id == client_id if client_id else None
        return await self._list(PaymentRow, Payment, PaymentRow.payment_date.desc(), where=where)

    async def update_payment(self, payment: Payment) -> Payment:
        return await self._update(PaymentRow, payment, payment.payment_id, "payment")

    async def delete_payment(self, payment_id: str) -> None:
        await self._delete(PaymentRow, payment_id, "payment")

    # --- Expenditures ---

    async def add_expenditure(self, expenditure: Expenditure) -> Expenditure:
        return await self._add(ExpenditureRow, expenditure)

    async def get_expenditure(self, expenditure_id: str) -> Optional[Expenditure]:
        return await self._get(ExpenditureRow, Expenditure, expenditure_id)

    async def list_expenditures(self) -> list[Expenditure]:
        return await self._list(ExpenditureRow, Expenditure, ExpenditureRow.expenditure_date.desc())

    async def update_expenditure(self, expenditure: Expenditure) -> Expenditure:
        return await self._update(ExpenditureRow, expenditure, expenditure.expenditure_id, "expenditure")

    async def delete_expenditure(self, expenditure_id: str) -> None:
        await self._delete(ExpenditureRow, expenditure_id, "expenditure")

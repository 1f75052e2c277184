"""Database tables for the embedded store.

Uses SQLAlchemy 2.0 with async support.
Backend-agnostic: works with SQLite (default) and PostgreSQL.
Nested structures (service details, class schedule, roster) live in JSON
columns; everything that is filtered or sorted on is a real column.
"""

from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    TypeDecorator,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all tables."""
    pass


class UTCDateTime(TypeDecorator):
    """Stores naive UTC, hands back aware UTC (SQLite drops tzinfo)."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


class AttributionColumns:
    created_by: Mapped[str] = mapped_column(String(100), default="")
    created_by_username: Mapped[str] = mapped_column(String(200), default="")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime)
    modified_by: Mapped[Optional[str]] = mapped_column(String(100))
    modified_by_username: Mapped[Optional[str]] = mapped_column(String(200))
    modified_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)


class ProspectRow(AttributionColumns, Base):
    __tablename__ = "prospects"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(200))
    email: Mapped[Optional[str]] = mapped_column(String(320))
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    contact_method: Mapped[str] = mapped_column(String(30))
    date_of_contact: Mapped[date] = mapped_column(Date, index=True)
    notes: Mapped[str] = mapped_column(Text, default="")
    service_type: Mapped[str] = mapped_column(String(40), index=True)
    details: Mapped[dict] = mapped_column(JSON)
    status: Mapped[str] = mapped_column(String(20), index=True)
    converted_on: Mapped[Optional[date]] = mapped_column(Date)

    def __repr__(self) -> str:
        return f"<Prospect {self.id}: {self.name} [{self.status}]>"


class FollowUpRow(Base):
    __tablename__ = "follow_ups"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    prospect_id: Mapped[str] = mapped_column(
        ForeignKey("prospects.id", ondelete="CASCADE"), index=True
    )
    due_date: Mapped[date] = mapped_column(Date, index=True)
    assigned_to: Mapped[str] = mapped_column(String(200))
    notes: Mapped[str] = mapped_column(Text, default="")
    status: Mapped[str] = mapped_column(String(20))
    outcome: Mapped[Optional[str]] = mapped_column(Text)


class CommunicationRow(AttributionColumns, Base):
    __tablename__ = "communications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    type: Mapped[str] = mapped_column(String(30))
    title: Mapped[str] = mapped_column(String(300))
    description: Mapped[str] = mapped_column(Text, default="")
    prospect_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("prospects.id", ondelete="CASCADE"), index=True
    )
    assigned_to: Mapped[str] = mapped_column(String(200))
    due_date: Mapped[date] = mapped_column(Date, index=True)
    status: Mapped[str] = mapped_column(String(20))
    priority: Mapped[str] = mapped_column(String(10))
    outcome: Mapped[Optional[str]] = mapped_column(Text)


class StudentRow(AttributionColumns, Base):
    __tablename__ = "students"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    student_id: Mapped[str] = mapped_column(String(30), unique=True)
    name: Mapped[str] = mapped_column(String(200), index=True)
    email: Mapped[Optional[str]] = mapped_column(String(320))
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    language_of_study: Mapped[str] = mapped_column(String(100), default="")
    registration_date: Mapped[date] = mapped_column(Date, index=True)
    date_of_birth: Mapped[Optional[date]] = mapped_column(Date)
    nationality: Mapped[str] = mapped_column(String(100), default="")
    occupation: Mapped[str] = mapped_column(String(200), default="")
    address: Mapped[str] = mapped_column(Text, default="")
    mother_tongue: Mapped[str] = mapped_column(String(100), default="")
    referral_source: Mapped[Optional[str]] = mapped_column(String(30))
    referral_source_other: Mapped[Optional[str]] = mapped_column(String(300))
    fees: Mapped[float] = mapped_column(Float, default=0.0)
    # Not a foreign key: the prospect may be deleted later
    prospect_id: Mapped[Optional[str]] = mapped_column(String(36))


class StudentSequenceRow(Base):
    """Last issued student sequence number per registration year."""
    __tablename__ = "student_sequences"

    year: Mapped[int] = mapped_column(Integer, primary_key=True)
    last_value: Mapped[int] = mapped_column(Integer, default=0)


class ClassRow(AttributionColumns, Base):
    __tablename__ = "classes"

    class_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), index=True)
    language: Mapped[str] = mapped_column(String(100))
    level: Mapped[str] = mapped_column(String(10))
    teacher_id: Mapped[str] = mapped_column(String(100), default="")
    schedule: Mapped[list] = mapped_column(JSON, default=list)
    student_ids: Mapped[list] = mapped_column(JSON, default=list)


class PaymentRow(AttributionColumns, Base):
    __tablename__ = "payments"

    payment_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    payer_name: Mapped[str] = mapped_column(String(200))
    client_id: Mapped[str] = mapped_column(String(36), index=True)
    payment_date: Mapped[date] = mapped_column(Date, index=True)
    amount: Mapped[float] = mapped_column(Float)
    currency: Mapped[str] = mapped_column(String(3))
    service: Mapped[str] = mapped_column(String(40))
    balance: Mapped[Optional[float]] = mapped_column(Float)
    balance_currency: Mapped[Optional[str]] = mapped_column(String(3))
    method: Mapped[str] = mapped_column(String(30))
    notes: Mapped[Optional[str]] = mapped_column(Text)


class ExpenditureRow(AttributionColumns, Base):
    __tablename__ = "expenditures"

    expenditure_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    payee_name: Mapped[str] = mapped_column(String(200))
    expenditure_date: Mapped[date] = mapped_column(Date, index=True)
    amount: Mapped[float] = mapped_column(Float)
    currency: Mapped[str] = mapped_column(String(3))
    description: Mapped[str] = mapped_column(Text, default="")
    category: Mapped[str] = mapped_column(String(30))
    method: Mapped[str] = mapped_column(String(30))

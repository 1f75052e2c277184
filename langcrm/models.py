"""Pydantic models for the language-services CRM.

Entities:
- Prospect:        potential customer, service details as a tagged union
- FollowUpAction:  task tied to one prospect
- Communication:   general team task (optionally linked to a prospect)
- Student:         converted language-training client
- LanguageClass:   scheduled course, owns the enrollment roster
- Payment / Expenditure: money in / money out
"""
import enum
import re
import uuid
from datetime import date, datetime, time, timezone
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator


# --- Enums ---


class ServiceType(str, enum.Enum):
    LANGUAGE_TRAINING = "Language Training"
    DOC_TRANSLATION = "Doc Translation"
    INTERPRETATION = "Interpretation"


class ContactMethod(str, enum.Enum):
    PHONE = "Phone"
    IN_PERSON = "In-Person"
    MAIL = "Mail"
    WHATSAPP = "WhatsApp"
    FACEBOOK = "FB"
    INSTAGRAM = "IG"
    TIKTOK = "TikTok"


class ProspectStatus(str, enum.Enum):
    """Prospect lifecycle. CONVERTED is terminal."""
    INQUIRED = "Inquired"
    CONVERTED = "Converted"


class FollowUpStatus(str, enum.Enum):
    PENDING = "Pending"
    COMPLETED = "Completed"


class CommunicationType(str, enum.Enum):
    PROSPECT_FOLLOW_UP = "prospect-followup"
    GENERAL = "general"


class CommunicationPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Currency(str, enum.Enum):
    USD = "USD"
    UGX = "UGX"
    EUR = "EUR"
    GBP = "GBP"
    KES = "KES"  # Kenyan Shilling
    TZS = "TZS"  # Tanzanian Shilling
    RWF = "RWF"  # Rwandan Franc
    ZAR = "ZAR"  # South African Rand
    NGN = "NGN"  # Nigerian Naira
    GHS = "GHS"  # Ghanaian Cedi
    JPY = "JPY"
    CNY = "CNY"
    INR = "INR"
    AUD = "AUD"
    CAD = "CAD"


class HowTheyHeardAboutUs(str, enum.Enum):
    FAMILY_FRIEND = "Family/Friend"
    SIGN_POST = "Sign Post"
    GOOGLE_SEARCH = "Google Search"
    SOCIAL_MEDIA = "Social Media"
    OTHER = "Other"


class ClassLevel(str, enum.Enum):
    A1_1 = "A1.1"
    A1_2 = "A1.2"
    A2_1 = "A2.1"
    A2_2 = "A2.2"
    B1_1 = "B1.1"
    B1_2 = "B1.2"
    B2_1 = "B2.1"
    B2_2 = "B2.2"
    C1_1 = "C1.1"
    C1_2 = "C1.2"
    C2_1 = "C2.1"
    C2_2 = "C2.2"


class DayOfWeek(str, enum.Enum):
    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"
    SATURDAY = "Saturday"
    SUNDAY = "Sunday"


class DurationUnit(str, enum.Enum):
    HOURS = "Hours"
    DAYS = "Days"


class PaymentMethod(str, enum.Enum):
    CASH = "Cash"
    MOBILE_MONEY = "Mobile Money"
    BANK_TRANSFER = "Bank Transfer"


class ExpenditureCategory(str, enum.Enum):
    RENT = "Rent"
    SALARIES = "Salaries"
    UTILITIES = "Utilities"
    MARKETING = "Marketing"
    SUPPLIES = "Office Supplies"
    OTHER = "Other"


class TimeWindow(str, enum.Enum):
    """Reporting windows. Relative ones mean "since now minus X"."""
    ALL = "all"
    LAST_24H = "24h"
    LAST_7D = "7d"
    LAST_MONTH = "1m"
    LAST_3_MONTHS = "3m"
    LAST_6_MONTHS = "6m"
    LAST_YEAR = "1y"
    CUSTOM = "custom"


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Attribution ---


class Actor(BaseModel):
    """The user performing a mutation."""
    id: str
    username: str


class Stamped(BaseModel):
    """Created-by / modified-by bookkeeping shared by all entities."""

    created_by: str = ""
    created_by_username: str = ""
    created_at: datetime = Field(default_factory=_utcnow)
    modified_by: Optional[str] = None
    modified_by_username: Optional[str] = None
    modified_at: Optional[datetime] = None

    def stamp_created(self, actor: Actor) -> None:
        self.created_by = actor.id
        self.created_by_username = actor.username
        self.created_at = _utcnow()

    def stamp_modified(self, actor: Actor) -> None:
        self.modified_by = actor.id
        self.modified_by_username = actor.username
        self.modified_at = _utcnow()


# --- Service details (tagged union keyed by `service`) ---


def _required_text(value: str, label: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError(f"{label} is required")
    return value


class TranslationCompletion(BaseModel):
    """Completion record of a document translation job. Fee = pages x rate."""

    completion_date: date = Field(default_factory=date.today)
    document_title: str
    number_of_pages: int = Field(gt=0)
    rate_per_page: float = Field(ge=0)
    total_fee: float = 0.0

    @field_validator("document_title")
    @classmethod
    def _title_required(cls, v: str) -> str:
        return _required_text(v, "Document title")

    @model_validator(mode="after")
    def _compute_fee(self) -> "TranslationCompletion":
        self.total_fee = self.number_of_pages * self.rate_per_page
        return self


class InterpretationCompletion(BaseModel):
    """Completion record of an interpretation job. Fee = duration x rate."""

    completion_date: date = Field(default_factory=date.today)
    subject: str
    duration: float = Field(gt=0)
    duration_unit: DurationUnit = DurationUnit.HOURS
    rate: float = Field(ge=0)
    total_fee: float = 0.0

    @field_validator("subject")
    @classmethod
    def _subject_required(cls, v: str) -> str:
        return _required_text(v, "Subject")

    @model_validator(mode="after")
    def _compute_fee(self) -> "InterpretationCompletion":
        self.total_fee = self.duration * self.rate
        return self


class LanguageTrainingDetails(BaseModel):
    service: Literal["Language Training"] = "Language Training"
    training_languages: list[str] = Field(default_factory=list)


class TranslationDetails(BaseModel):
    service: Literal["Doc Translation"] = "Doc Translation"
    source_language: str
    target_language: str
    completion: Optional[TranslationCompletion] = None


class InterpretationDetails(BaseModel):
    service: Literal["Interpretation"] = "Interpretation"
    source_language: str
    target_language: str
    completion: Optional[InterpretationCompletion] = None


ServiceDetails = Annotated[
    Union[LanguageTrainingDetails, TranslationDetails, InterpretationDetails],
    Field(discriminator="service"),
]

CompletionRecord = Union[TranslationCompletion, InterpretationCompletion]


# --- Prospects & tasks ---


class Prospect(Stamped):
    """A potential customer."""

    id: str = Field(default_factory=_new_id)
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    contact_method: ContactMethod
    # Overwritten with the conversion date on conversion so history sorts by it
    date_of_contact: date
    notes: str = ""
    details: ServiceDetails
    status: ProspectStatus = ProspectStatus.INQUIRED
    converted_on: Optional[date] = None

    @property
    def service_type(self) -> ServiceType:
        return ServiceType(self.details.service)

    @property
    def is_converted(self) -> bool:
        return self.status == ProspectStatus.CONVERTED

    @property
    def completion(self) -> Optional[CompletionRecord]:
        if isinstance(self.details, (TranslationDetails, InterpretationDetails)):
            return self.details.completion
        return None

    @property
    def total_fee(self) -> float:
        completion = self.completion
        return completion.total_fee if completion else 0.0

    @property
    def completed_on(self) -> date:
        """Date used to order the completed-jobs history."""
        completion = self.completion
        if completion is not None:
            return completion.completion_date
        return self.date_of_contact


class FollowUpAction(BaseModel):
    """A scheduled task tied to one prospect."""

    id: str = Field(default_factory=_new_id)
    prospect_id: str
    due_date: date
    assigned_to: str
    notes: str = ""
    status: FollowUpStatus = FollowUpStatus.PENDING
    outcome: Optional[str] = None


class Communication(Stamped):
    """A general team task, optionally linked to a prospect."""

    id: str = Field(default_factory=_new_id)
    type: CommunicationType = CommunicationType.GENERAL
    title: str
    description: str = ""
    prospect_id: Optional[str] = Field(default=None, validate_default=True)
    assigned_to: str = "Everyone"
    due_date: date
    status: FollowUpStatus = FollowUpStatus.PENDING
    priority: CommunicationPriority = CommunicationPriority.MEDIUM
    outcome: Optional[str] = None

    @field_validator("prospect_id")
    @classmethod
    def _prospect_link_matches_type(cls, v, info):
        if info.data.get("type") == CommunicationType.PROSPECT_FOLLOW_UP and not v:
            raise ValueError("prospect_id is required for prospect follow-ups")
        return v


# --- Students ---


STUDENT_ID_RE = re.compile(r"^STU-(\d{2})(\d{2})(\d{2})-(\d{4,})$")


def format_student_id(registration_date: date, sequence: int) -> str:
    """STU-DDMMYY-NNNN, NNNN counting registrations within the calendar year."""
    return f"STU-{registration_date:%d%m%y}-{sequence:04d}"


def parse_student_sequence(student_id: Optional[str]) -> Optional[int]:
    match = STUDENT_ID_RE.match(student_id or "")
    return int(match.group(4)) if match else None


class StudentDetails(BaseModel):
    """Fields collected when a prospect becomes a student."""

    language_of_study: str = ""
    registration_date: date
    date_of_birth: Optional[date] = None
    nationality: str = ""
    occupation: str = ""
    address: str = ""
    mother_tongue: str = ""
    referral_source: Optional[HowTheyHeardAboutUs] = None
    referral_source_other: Optional[str] = Field(default=None, validate_default=True)
    fees: float = Field(default=0.0, ge=0)

    @field_validator("referral_source_other")
    @classmethod
    def _other_text_only_for_other(cls, v, info):
        if info.data.get("referral_source") != HowTheyHeardAboutUs.OTHER:
            return None
        return v


class Student(StudentDetails, Stamped):
    id: str = Field(default_factory=_new_id)
    student_id: Optional[str] = None  # assigned by the store, immutable
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    prospect_id: Optional[str] = None


# --- Classes ---


class ClassSession(BaseModel):
    """One weekly slot of a class."""
    day_of_week: DayOfWeek
    start_time: time
    end_time: time

    @field_validator("end_time")
    @classmethod
    def _ends_after_start(cls, v: time, info) -> time:
        start = info.data.get("start_time")
        if start is not None and v <= start:
            raise ValueError("end_time must be after start_time")
        return v


class LanguageClass(Stamped):
    """A scheduled course. ``student_ids`` is the only record of enrollment."""

    class_id: str = Field(default_factory=_new_id)
    name: str
    language: str
    level: ClassLevel
    teacher_id: str = ""
    schedule: list[ClassSession] = Field(default_factory=list)
    student_ids: list[str] = Field(default_factory=list)

    def has_student(self, student_id: str) -> bool:
        return student_id in self.student_ids


# --- Finance ---


class Payment(Stamped):
    payment_id: str = Field(default_factory=_new_id)
    payer_name: str
    client_id: str  # prospect.id or student.id
    payment_date: date
    amount: float = Field(gt=0)
    currency: Currency = Currency.USD
    service: ServiceType
    balance: Optional[float] = None
    balance_currency: Optional[Currency] = None
    method: PaymentMethod = PaymentMethod.CASH
    notes: Optional[str] = None


class Expenditure(Stamped):
    expenditure_id: str = Field(default_factory=_new_id)
    payee_name: str
    expenditure_date: date
    amount: float = Field(gt=0)
    currency: Currency = Currency.USD
    description: str = ""
    category: ExpenditureCategory = ExpenditureCategory.OTHER
    method: PaymentMethod = PaymentMethod.CASH


# --- Queries ---


class DateRange(BaseModel):
    """Custom reporting range; both ends inclusive, end extends to end-of-day."""
    start_date: date
    end_date: date

    @field_validator("end_date")
    @classmethod
    def _not_before_start(cls, v: date, info) -> date:
        start = info.data.get("start_date")
        if start is not None and v < start:
            raise ValueError("end_date must not be before start_date")
        return v


class SearchCriteria(BaseModel):
    """Active-prospect search. ``None`` filters mean "all"."""
    contact_method: Optional[ContactMethod] = None
    service: Optional[ServiceType] = None
    search_term: str = ""
    window: TimeWindow = TimeWindow.ALL
    custom_range: Optional[DateRange] = None

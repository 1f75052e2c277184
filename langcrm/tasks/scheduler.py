"""Follow-ups and team communications: urgency, badges, the task feed.

The pure helpers (``classify_urgency``, ``prospect_indicators``,
``build_task_feed``) take ``today`` explicitly; only the service touches
the store.
"""

import enum
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Optional, Union

from pydantic import BaseModel, ValidationError

from langcrm.attribution import AttributionProvider
from langcrm.errors import InvalidStateError, NotFoundError, ValidationFailed
from langcrm.events import DomainEvent, EventBus
from langcrm.models import (
    Communication,
    CommunicationPriority,
    FollowUpAction,
    FollowUpStatus,
    Prospect,
)
from langcrm.store.base import DataStore

logger = logging.getLogger(__name__)


class Urgency(str, enum.Enum):
    COMPLETED = "Completed"
    OVERDUE = "Overdue"
    DUE_TODAY = "DueToday"
    UPCOMING = "Upcoming"


class TaskKind(str, enum.Enum):
    FOLLOW_UP = "follow-up"
    COMMUNICATION = "communication"


def _as_date(value) -> date:
    # Time of day never matters for due dates
    return value.date() if isinstance(value, datetime) else value


def classify_urgency(due_date: date, status: FollowUpStatus, today: Optional[date] = None) -> Urgency:
    """Completed wins; otherwise compare calendar dates only."""
    if status == FollowUpStatus.COMPLETED:
        return Urgency.COMPLETED
    due = _as_date(due_date)
    today = _as_date(today or date.today())
    if due < today:
        return Urgency.OVERDUE
    if due == today:
        return Urgency.DUE_TODAY
    return Urgency.UPCOMING


@dataclass
class TaskIndicator:
    """Badge data for one prospect row."""
    count: int = 0
    has_overdue: bool = False
    has_due_today: bool = False


def prospect_indicators(
    follow_ups: Iterable[FollowUpAction],
    communications: Iterable[Communication] = (),
    today: Optional[date] = None,
) -> dict[str, TaskIndicator]:
    """Pending-task badges per prospect id. Completed tasks are not counted."""
    today = today or date.today()
    indicators: dict[str, TaskIndicator] = {}
    tasks = list(follow_ups) + [c for c in communications if c.prospect_id]
    for task in tasks:
        if task.status != FollowUpStatus.PENDING:
            continue
        indicator = indicators.setdefault(task.prospect_id, TaskIndicator())
        indicator.count += 1
        urgency = classify_urgency(task.due_date, task.status, today)
        if urgency == Urgency.OVERDUE:
            indicator.has_overdue = True
        elif urgency == Urgency.DUE_TODAY:
            indicator.has_due_today = True
    return indicators


class TaskItem(BaseModel):
    """One row of the merged task feed, whatever its underlying kind."""
    id: str
    kind: TaskKind
    title: str
    due_date: date
    status: FollowUpStatus
    urgency: Urgency
    assigned_to: str
    priority: Optional[CommunicationPriority] = None
    prospect_id: Optional[str] = None
    prospect_name: Optional[str] = None
    notes: str = ""
    outcome: Optional[str] = None


def build_task_feed(
    follow_ups: Iterable[FollowUpAction],
    communications: Iterable[Communication],
    prospects: Optional[Mapping[str, Prospect]] = None,
    today: Optional[date] = None,
    include_completed: bool = True,
) -> list[TaskItem]:
    """Follow-ups and communications as one list, earliest due first."""
    today = today or date.today()
    prospects = prospects or {}
    items: list[TaskItem] = []

    for f in follow_ups:
        prospect = prospects.get(f.prospect_id)
        items.append(TaskItem(
            id=f.id,
            kind=TaskKind.FOLLOW_UP,
            title=f"Follow up with {prospect.name}" if prospect else "Follow up",
            due_date=f.due_date,
            status=f.status,
            urgency=classify_urgency(f.due_date, f.status, today),
            assigned_to=f.assigned_to,
            prospect_id=f.prospect_id,
            prospect_name=prospect.name if prospect else None,
            notes=f.notes,
            outcome=f.outcome,
        ))

    for c in communications:
        prospect = prospects.get(c.prospect_id) if c.prospect_id else None
        items.append(TaskItem(
            id=c.id,
            kind=TaskKind.COMMUNICATION,
            title=c.title,
            due_date=c.due_date,
            status=c.status,
            urgency=classify_urgency(c.due_date, c.status, today),
            assigned_to=c.assigned_to,
            priority=c.priority,
            prospect_id=c.prospect_id,
            prospect_name=prospect.name if prospect else None,
            notes=c.description,
            outcome=c.outcome,
        ))

    if not include_completed:
        items = [i for i in items if i.status == FollowUpStatus.PENDING]
    # sorted() is stable: same-day follow-ups stay ahead of communications
    return sorted(items, key=lambda i: i.due_date)


def _require_outcome(outcome: Optional[str]) -> str:
    outcome = (outcome or "").strip()
    if not outcome:
        raise ValidationFailed.single("outcome", "An outcome is required to complete a task")
    return outcome


class TaskService:
    """Mutations of follow-ups and communications. Every one emits a refresh event."""

    def __init__(self, store: DataStore, attribution: AttributionProvider, events: EventBus):
        self.store = store
        self.attribution = attribution
        self.events = events

    # --- Follow-ups ---

    async def add_follow_up(
        self, prospect_id: str, due_date: date, assigned_to: str, notes: str = ""
    ) -> FollowUpAction:
        try:
            follow_up = FollowUpAction(
                prospect_id=prospect_id, due_date=due_date, assigned_to=assigned_to, notes=notes
            )
        except ValidationError as e:
            raise ValidationFailed.from_pydantic(e) from e
        if not follow_up.assigned_to.strip():
            raise ValidationFailed.single("assigned_to", "Assignee is required")
        await self.attribution.current_actor()
        if await self.store.get_prospect(prospect_id) is None:
            raise NotFoundError("prospect", prospect_id)
        created = await self.store.add_follow_up(follow_up)
        logger.info(f"Follow-up {created.id} scheduled for {prospect_id} on {due_date}")
        await self.events.emit(DomainEvent.FOLLOW_UP_UPDATED)
        return created

    async def complete_follow_up(self, follow_up_id: str, outcome: str) -> FollowUpAction:
        """Pending -> Completed. There is no way back; reschedule with a new follow-up."""
        outcome = _require_outcome(outcome)
        await self.attribution.current_actor()
        follow_up = await self.store.get_follow_up(follow_up_id)
        if follow_up is None:
            raise NotFoundError("follow-up", follow_up_id)
        if follow_up.status == FollowUpStatus.COMPLETED:
            raise InvalidStateError(f"Follow-up {follow_up_id} is already completed")

        done = follow_up.model_copy(update={"status": FollowUpStatus.COMPLETED, "outcome": outcome})
        done = await self.store.update_follow_up(done)
        logger.info(f"Follow-up {follow_up_id} completed")
        await self.events.emit(DomainEvent.FOLLOW_UP_UPDATED)
        return done

    async def delete_follow_up(self, follow_up_id: str) -> None:
        await self.attribution.current_actor()
        await self.store.delete_follow_up(follow_up_id)
        await self.events.emit(DomainEvent.FOLLOW_UP_UPDATED)

    async def list_follow_ups(self, prospect_id: Optional[str] = None) -> list[FollowUpAction]:
        return await self.store.list_follow_ups(prospect_id)

    # --- Communications ---

    async def add_communication(self, data: Union[Communication, dict[str, Any]]) -> Communication:
        try:
            communication = Communication.model_validate(
                data.model_dump() if isinstance(data, Communication) else data
            )
        except ValidationError as e:
            raise ValidationFailed.from_pydantic(e) from e
        if not communication.title.strip():
            raise ValidationFailed.single("title", "Title is required")
        actor = await self.attribution.current_actor()
        if communication.prospect_id and await self.store.get_prospect(communication.prospect_id) is None:
            raise NotFoundError("prospect", communication.prospect_id)

        communication.status = FollowUpStatus.PENDING
        communication.outcome = None
        communication.stamp_created(actor)
        created = await self.store.add_communication(communication)
        logger.info(f"Communication {created.id} added: {created.title}")
        await self.events.emit(DomainEvent.COMMUNICATION_UPDATED)
        return created

    async def update_communication(self, communication_id: str, changes: dict[str, Any]) -> Communication:
        """Edit a pending communication. Status and outcome change only via completion."""
        actor = await self.attribution.current_actor()
        current = await self.store.get_communication(communication_id)
        if current is None:
            raise NotFoundError("communication", communication_id)
        if current.status == FollowUpStatus.COMPLETED:
            raise InvalidStateError(f"Communication {communication_id} is completed")
        if "status" in changes or "outcome" in changes:
            raise InvalidStateError("Use complete_communication to change status")

        merged = {**current.model_dump(), **changes, "id": current.id}
        try:
            updated = Communication.model_validate(merged)
        except ValidationError as e:
            raise ValidationFailed.from_pydantic(e) from e
        updated.stamp_modified(actor)
        updated = await self.store.update_communication(updated)
        await self.events.emit(DomainEvent.COMMUNICATION_UPDATED)
        return updated

    async def complete_communication(self, communication_id: str, outcome: str) -> Communication:
        outcome = _require_outcome(outcome)
        actor = await self.attribution.current_actor()
        current = await self.store.get_communication(communication_id)
        if current is None:
            raise NotFoundError("communication", communication_id)
        if current.status == FollowUpStatus.COMPLETED:
            raise InvalidStateError(f"Communication {communication_id} is already completed")

        done = current.model_copy(update={"status": FollowUpStatus.COMPLETED, "outcome": outcome})
        done.stamp_modified(actor)
        done = await self.store.update_communication(done)
        logger.info(f"Communication {communication_id} completed")
        await self.events.emit(DomainEvent.COMMUNICATION_UPDATED)
        return done

    async def delete_communication(self, communication_id: str) -> None:
        await self.attribution.current_actor()
        await self.store.delete_communication(communication_id)
        await self.events.emit(DomainEvent.COMMUNICATION_UPDATED)

    async def list_communications(self) -> list[Communication]:
        return await self.store.list_communications()

    # --- Views ---

    async def feed(self, today: Optional[date] = None, include_completed: bool = True) -> list[TaskItem]:
        prospects = {p.id: p for p in await self.store.list_prospects()}
        return build_task_feed(
            await self.store.list_follow_ups(),
            await self.store.list_communications(),
            prospects,
            today=today,
            include_completed=include_completed,
        )

    async def indicators(self, today: Optional[date] = None) -> dict[str, TaskIndicator]:
        return prospect_indicators(
            await self.store.list_follow_ups(),
            await self.store.list_communications(),
            today=today,
        )

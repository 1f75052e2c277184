"""Follow-ups, communications and the task feed."""

from .scheduler import (
    TaskIndicator,
    TaskItem,
    TaskKind,
    TaskService,
    Urgency,
    build_task_feed,
    classify_urgency,
    prospect_indicators,
)

__all__ = [
    "TaskIndicator", "TaskItem", "TaskKind", "TaskService", "Urgency",
    "build_task_feed", "classify_urgency", "prospect_indicators",
]

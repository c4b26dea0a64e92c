"""Notification outbox and dispatch."""

from .dispatcher import NotificationDispatcher
from .models import NOTIFICATIONS_TABLES_CQL, OutboxTask, TaskKind
from .service import DrainReport, OutboxService


__all__ = [
    "NOTIFICATIONS_TABLES_CQL",
    "DrainReport",
    "NotificationDispatcher",
    "OutboxService",
    "OutboxTask",
    "TaskKind",
]

"""Recurring enrollment jobs (deadline sweep, reminders, outbox drain)."""

from .deadline_sweep import DeadlineSweep, SweepReport
from .reminders import ReminderReport, ReminderSweep
from .scheduler import JobScheduler


__all__ = [
    "DeadlineSweep",
    "JobScheduler",
    "ReminderReport",
    "ReminderSweep",
    "SweepReport",
]

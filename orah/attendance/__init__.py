"""Attendance recording."""

from .models import (
    ATTENDANCE_TABLES_CQL,
    SYSTEM_MARKER,
    AttendanceRecord,
    AttendanceStatus,
    RecordOutcome,
)
from .service import AttendanceService


__all__ = [
    "ATTENDANCE_TABLES_CQL",
    "SYSTEM_MARKER",
    "AttendanceRecord",
    "AttendanceService",
    "AttendanceStatus",
    "RecordOutcome",
]

"""Tagged enrollment update variants.

A progress request arrives as a loosely typed payload. It is turned into a
list of explicit variants up front (``build_updates``), so validation
happens before anything touches the store. ``apply_updates`` then resolves
them against a snapshot in a fixed order: progress, status, time, access.

Status rules:
- progress 100 always completes the enrollment; any status sent with it is
  ignored
- progress below 100 on a completed enrollment makes it active again
- ``missed`` is only ever set by the deadline sweep
- an override that contradicts "completed iff progress == 100" is rejected
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from orah.utils.dates import ensure_utc_aware

from .exceptions import InvalidInputError
from .models import (
    MAX_PROGRESS,
    MAX_TIME_SPENT_SECONDS,
    Enrollment,
    EnrollmentStatus,
)


@dataclass(frozen=True)
class ProgressSet:
    value: int


@dataclass(frozen=True)
class StatusOverride:
    status: EnrollmentStatus


@dataclass(frozen=True)
class TimeIncrement:
    delta: int


@dataclass(frozen=True)
class AccessTouch:
    at: datetime


EnrollmentUpdate = ProgressSet | StatusOverride | TimeIncrement | AccessTouch

CLIENT_STATUSES = frozenset({EnrollmentStatus.ACTIVE, EnrollmentStatus.COMPLETED})


# ==============================================================================
# Parsing
# ==============================================================================


def _parse_number(raw: Any, field: str) -> float:
    if isinstance(raw, bool):
        raise InvalidInputError(f"{field} must be a number")

    if isinstance(raw, int | float):
        value = float(raw)
    elif isinstance(raw, str) and raw.strip():
        try:
            value = float(raw.strip())
        except ValueError as e:
            raise InvalidInputError(f"{field} must be a number") from e
    else:
        raise InvalidInputError(f"{field} must be a number")

    if not math.isfinite(value):
        raise InvalidInputError(f"{field} must be a finite number")
    return value


def parse_progress(raw: Any) -> ProgressSet:
    """Parse a progress value into [0, 100].

    Fractions are truncated, so only an exact 100 completes a lesson.
    """
    value = _parse_number(raw, "progress")
    if value < 0 or value > MAX_PROGRESS:
        raise InvalidInputError(f"progress must be between 0 and {MAX_PROGRESS}")
    return ProgressSet(int(value))


def parse_status(raw: Any) -> StatusOverride:
    try:
        status = EnrollmentStatus(raw)
    except ValueError as e:
        raise InvalidInputError(f"Unknown status: {raw!r}") from e

    if status not in CLIENT_STATUSES:
        raise InvalidInputError(f"status cannot be set to {status.value!r}")
    return StatusOverride(status)


def parse_time_increment(raw: Any) -> TimeIncrement:
    value = _parse_number(raw, "timeSpentSeconds")
    if value < 0:
        raise InvalidInputError("timeSpentSeconds must be a non-negative delta")
    if value > MAX_TIME_SPENT_SECONDS:
        raise InvalidInputError("timeSpentSeconds is too large")
    return TimeIncrement(int(value))


def parse_access(raw: Any) -> AccessTouch:
    if isinstance(raw, datetime):
        return AccessTouch(ensure_utc_aware(raw))
    if isinstance(raw, str):
        try:
            return AccessTouch(ensure_utc_aware(datetime.fromisoformat(raw)))
        except ValueError as e:
            raise InvalidInputError("lastAccessDate must be an ISO-8601 date") from e
    raise InvalidInputError("lastAccessDate must be an ISO-8601 date")


def build_updates(payload: dict[str, Any]) -> list[EnrollmentUpdate]:
    """Validate a progress payload and convert it into update variants.

    ``payload`` uses snake_case keys with ``None`` meaning "not supplied".

    Raises:
        InvalidInputError: If no field is supplied or any field is invalid
    """
    updates: list[EnrollmentUpdate] = []

    progress = None
    if payload.get("progress") is not None:
        progress = parse_progress(payload["progress"])
        updates.append(progress)
    # Full progress decides the status on its own
    completing = progress is not None and progress.value == MAX_PROGRESS
    if payload.get("status") is not None and not completing:
        updates.append(parse_status(payload["status"]))
    if payload.get("time_spent_seconds") is not None:
        updates.append(parse_time_increment(payload["time_spent_seconds"]))
    if payload.get("last_access_date") is not None:
        updates.append(parse_access(payload["last_access_date"]))

    if not updates:
        raise InvalidInputError("No fields to update")
    return updates


# ==============================================================================
# Application
# ==============================================================================


def _first(updates: list[EnrollmentUpdate], kind: type) -> Any:
    return next((u for u in updates if isinstance(u, kind)), None)


def completes(updates: list[EnrollmentUpdate]) -> bool:
    """Whether the updates set progress to 100."""
    progress = _first(updates, ProgressSet)
    return progress is not None and progress.value == MAX_PROGRESS


def apply_updates(
    enrollment: Enrollment, updates: list[EnrollmentUpdate], now: datetime
) -> dict[str, Any]:
    """Resolve update variants against a snapshot into the fields to write.

    Deterministic for a given snapshot, so it can be re-run safely when a
    versioned write has to be retried.

    Raises:
        InvalidInputError: If a status override contradicts the progress, or
            the accumulated time no longer fits the column
    """
    fields: dict[str, Any] = {}
    progress_set: ProgressSet | None = _first(updates, ProgressSet)
    override: StatusOverride | None = _first(updates, StatusOverride)
    time_increment: TimeIncrement | None = _first(updates, TimeIncrement)
    access: AccessTouch | None = _first(updates, AccessTouch)

    progress = enrollment.progress
    status = EnrollmentStatus(enrollment.status)

    if progress_set is not None:
        progress = progress_set.value
        fields["progress"] = progress
        if progress == MAX_PROGRESS:
            status = EnrollmentStatus.COMPLETED
        elif override is not None:
            status = override.status
        elif status == EnrollmentStatus.COMPLETED:
            status = EnrollmentStatus.ACTIVE
    elif override is not None:
        status = override.status

    if (status == EnrollmentStatus.COMPLETED) != (progress == MAX_PROGRESS):
        msg = f"status {status.value!r} is inconsistent with progress {progress}"
        raise InvalidInputError(msg)

    if status.value != enrollment.status:
        fields["status"] = status.value

    if time_increment is not None:
        total = enrollment.time_spent_seconds + time_increment.delta
        if total > MAX_TIME_SPENT_SECONDS:
            raise InvalidInputError("timeSpentSeconds total is too large")
        fields["time_spent_seconds"] = total

    fields["last_access_date"] = access.at if access is not None else now
    return fields

"""Shared utilities."""

from orah.utils.dates import (
    days_elapsed,
    ensure_utc_aware,
    utc_now,
    utc_today,
    whole_days_elapsed,
)


__all__ = [
    "days_elapsed",
    "ensure_utc_aware",
    "utc_now",
    "utc_today",
    "whole_days_elapsed",
]

"""Lesson and user directory (read-only lookups)."""

from .models import DIRECTORY_TABLES_CQL, Lesson, UserContact
from .service import DirectoryService


__all__ = [
    "DIRECTORY_TABLES_CQL",
    "DirectoryService",
    "Lesson",
    "UserContact",
]

"""Caller authentication and role checks."""

from orah.auth.permissions import UserRole, has_permission
from orah.auth.schemas import Caller


__all__ = ["Caller", "UserRole", "has_permission"]

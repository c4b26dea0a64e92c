"""Pydantic schemas for the authenticated caller."""

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from orah.auth.permissions import UserRole, is_admin, is_instructor, is_student


class Caller(BaseModel):
    """Authenticated caller identity ``{id, role}``."""

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(..., description="User ID (token subject)")
    role: UserRole = Field(..., description="User role")

    @property
    def is_admin(self) -> bool:
        return is_admin(self.role)

    @property
    def is_instructor(self) -> bool:
        return is_instructor(self.role)

    @property
    def is_student(self) -> bool:
        return is_student(self.role)

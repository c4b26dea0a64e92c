"""Role-based access control for Orah School.

Hierarchical roles:
- ADMIN (level 2): Full access, may act on any enrollment
- INSTRUCTOR (level 1): Owns lessons, reviews redo requests for them
- STUDENT (level 0): Owns their own enrollments
"""

from enum import Enum


class UserRole(str, Enum):
    """User roles with hierarchical levels."""

    STUDENT = "student"
    INSTRUCTOR = "instructor"
    ADMIN = "admin"


# Role hierarchy mapping (role -> permission level)
ROLE_HIERARCHY: dict[UserRole, int] = {
    UserRole.STUDENT: 0,
    UserRole.INSTRUCTOR: 1,
    UserRole.ADMIN: 2,
}


def get_role_level(role: UserRole | str) -> int:
    """Get the permission level for a role.

    Unknown roles get the lowest level.
    """
    if isinstance(role, str):
        try:
            role = UserRole(role)
        except ValueError:
            return 0
    return ROLE_HIERARCHY.get(role, 0)


def has_permission(user_role: UserRole | str, required_role: UserRole | str) -> bool:
    """Check if user has at least the required permission level.

    Examples:
        >>> has_permission(UserRole.ADMIN, UserRole.INSTRUCTOR)
        True
        >>> has_permission("student", "instructor")
        False
    """
    return get_role_level(user_role) >= get_role_level(required_role)


def is_admin(role: UserRole | str) -> bool:
    """Check if role is ADMIN."""
    return role == UserRole.ADMIN or role == UserRole.ADMIN.value


def is_instructor(role: UserRole | str) -> bool:
    """Check if role is INSTRUCTOR."""
    return role == UserRole.INSTRUCTOR or role == UserRole.INSTRUCTOR.value


def is_student(role: UserRole | str) -> bool:
    """Check if role is STUDENT."""
    return role == UserRole.STUDENT or role == UserRole.STUDENT.value

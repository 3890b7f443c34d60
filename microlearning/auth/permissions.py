"""Platform roles.

Roles are assigned by the platform's users service and carried in the access
token. For microlearning only ADMIN is special: admins bypass the
application-approval gate and may act on any user's progress.
"""

from enum import Enum


class UserRole(str, Enum):
    """Platform user roles."""

    ADMIN = "admin"
    CHEF = "chef"
    DELIVERY_PARTNER = "delivery_partner"
    MANAGER = "manager"


def parse_role(role: UserRole | str | None) -> UserRole | None:
    """Convert a raw role claim to UserRole.

    Args:
        role: UserRole enum, string representation, or None

    Returns:
        UserRole, or None for missing/unknown roles

    Examples:
        >>> parse_role("chef")
        <UserRole.CHEF: 'chef'>
        >>> parse_role("courier") is None
        True
    """
    if role is None or isinstance(role, UserRole):
        return role
    try:
        return UserRole(role)
    except ValueError:
        return None


def is_admin(role: UserRole | str | None) -> bool:
    """Check if role is ADMIN."""
    return parse_role(role) == UserRole.ADMIN


def can_act_on_user(
    actor_id: int, actor_role: UserRole | str | None, target_user_id: int
) -> bool:
    """Check if actor may read or write target's microlearning data.

    Users act on themselves; admins act on anyone.
    """
    return actor_id == target_user_id or is_admin(actor_role)

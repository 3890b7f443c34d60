"""Authentication and roles."""

from microlearning.auth.permissions import UserRole, can_act_on_user, is_admin


__all__ = ["UserRole", "can_act_on_user", "is_admin"]

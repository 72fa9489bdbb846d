# testflow/permissions.py
from __future__ import annotations

from typing import Optional, Set

from rest_framework.permissions import SAFE_METHODS, BasePermission

from .models import UserRole
from .workflows import ROLES, normalize_role, required_roles, role_allows


# ------------------------------------------------------------------
# Role resolution
# ------------------------------------------------------------------
def user_roles(user) -> Set[str]:
    """
    Normalized lab roles of a user. Superusers are treated as ADMIN.
    """
    if not user or not getattr(user, "is_authenticated", False):
        return set()
    if getattr(user, "is_superuser", False):
        return {"ADMIN"}
    raw = UserRole.objects.filter(user=user).values_list("role", flat=True)
    return {normalize_role(r) for r in raw}


def primary_role(user) -> Optional[str]:
    """
    Highest-ranked role in ROLES order, for token claims and UI.
    """
    roles = user_roles(user)
    for role in ROLES:
        if role in roles:
            return role
    return None


def user_can(user, action: str) -> bool:
    return any(role_allows(action, role) for role in user_roles(user))


# ------------------------------------------------------------------
# Permission class
# ------------------------------------------------------------------
class WorkflowActionPermission(BasePermission):
    """
    Read: any authenticated user
    Write: role must allow the view's workflow action

    Views declare the action through ``workflow_action`` or
    ``get_workflow_action(request)``.
    """

    message = "Your role does not allow this action."

    def has_permission(self, request, view):
        user = getattr(request, "user", None)
        if not user or not user.is_authenticated:
            return False

        if request.method in SAFE_METHODS:
            return True

        getter = getattr(view, "get_workflow_action", None)
        action = getter(request) if getter else getattr(view, "workflow_action", None)
        if not action:
            return False

        if not user_can(user, action):
            self.message = (
                f"Action '{action}' requires one of the roles: {', '.join(required_roles(action))}."
            )
            return False
        return True

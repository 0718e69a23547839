"""
Custom permission classes for role based access control.
"""
from rest_framework.permissions import BasePermission

ADMIN_ROLES = {"admin", "super_admin"}


class IsAdminRole(BasePermission):
    """Allow access only to users with an administrative role."""
    message = "Admin access required"

    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        user = getattr(request, "user", None)
        return bool(user and user.is_authenticated and getattr(user, "role", None) in ADMIN_ROLES)


class IsSuperAdmin(BasePermission):
    """Only super admin."""
    message = "Super admin access required"

    def has_permission(self, request, view) -> bool:
        user = getattr(request, "user", None)
        return bool(user and user.is_authenticated and getattr(user, "role", None) == "super_admin")


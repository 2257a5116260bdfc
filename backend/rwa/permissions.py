"""
RWA — Custom Permissions
Role-based access for committee members.
"""
from rest_framework.permissions import BasePermission

from .models import User


class IsRWAAdmin(BasePermission):
    """Only administrators (or Django superusers)."""
    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        return request.user.is_superuser or request.user.role == User.ROLE_ADMIN


class IsAdminOrTreasurer(BasePermission):
    """Administrators and treasurers may record and edit payments."""
    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        if request.user.is_superuser:
            return True
        return request.user.role in (User.ROLE_ADMIN, User.ROLE_TREASURER)

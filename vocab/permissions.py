# vocab/permissions.py
from django.contrib.auth import get_user_model
from rest_framework.permissions import BasePermission


class IsActiveStaff(BasePermission):
    """
    Staff-only access, decided from the user's current database row.

    The request's user object may have been cached when the credentials were
    issued, so a suspended or demoted admin is re-checked on every call.
    """
    message = "Admin access required."

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False
        fresh = (
            get_user_model().objects.filter(pk=user.pk)
            .only("is_active", "is_staff")
            .first()
        )
        if fresh is None:
            return False
        return fresh.is_active and fresh.is_staff

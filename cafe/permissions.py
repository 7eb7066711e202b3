from rest_framework import permissions

from cafe.authentication import Role


class IsAdminRole(permissions.BasePermission):
    """Allow only callers whose gateway role is admin."""

    message = "You must be an administrator to perform this action."

    def has_permission(self, request, view):
        user = request.user
        return bool(
            user
            and user.is_authenticated
            and getattr(user, "role", None) == Role.ADMIN
        )

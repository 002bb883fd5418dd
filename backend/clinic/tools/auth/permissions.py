from __future__ import annotations

from rest_framework.permissions import BasePermission


class _HasRole(BasePermission):
    role = ""
    message = "You do not have access to this resource."

    def has_permission(self, request, view) -> bool:
        user = request.user
        return bool(user and user.is_authenticated and getattr(user, "role", "") == self.role)


class IsPatient(_HasRole):
    role = "patient"
    message = "Only patients can perform this action."


class IsDoctor(_HasRole):
    role = "doctor"
    message = "Only doctors can perform this action."


class IsAdmin(_HasRole):
    role = "admin"
    message = "Only administrators can perform this action."

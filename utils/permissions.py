# ==================== UTILS/PERMISSIONS.PY ====================
from rest_framework import permissions


class IsOwnerOrDriver(permissions.BasePermission):
    """Permission for booking - either host or driver"""

    def has_object_permission(self, request, view, obj):
        return obj.driver == request.user or obj.host == request.user


class IsHost(permissions.BasePermission):
    """Signed-in user registered as a parking space host"""

    def has_permission(self, request, view):
        return request.user.is_authenticated and request.user.is_host

# ==================== NOTIFICATIONS/ADMIN.PY ====================
from django.contrib import admin
from .models import ChangeEvent, Notification

@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ['user', 'type', 'title', 'booking', 'read', 'created_at']
    list_filter = ['type', 'read', 'created_at']
    search_fields = ['user__username', 'title', 'message']
    readonly_fields = ['created_at']


@admin.register(ChangeEvent)
class ChangeEventAdmin(admin.ModelAdmin):
    list_display = ['id', 'topic', 'parking_space', 'spot_label', 'booking', 'created_at']
    list_filter = ['topic', 'created_at']
    readonly_fields = ['topic', 'parking_space', 'spot_label', 'booking', 'payload', 'created_at']

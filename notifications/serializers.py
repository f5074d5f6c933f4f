# ==================== NOTIFICATIONS/SERIALIZERS.PY ====================
from rest_framework import serializers
from .models import ChangeEvent, Notification


class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = ['id', 'type', 'title', 'message', 'booking', 'parking_space', 'read', 'created_at']
        read_only_fields = ['id', 'type', 'title', 'message', 'booking', 'parking_space', 'created_at']


class ChangeEventSerializer(serializers.ModelSerializer):
    cursor = serializers.IntegerField(source='id', read_only=True)

    class Meta:
        model = ChangeEvent
        fields = ['cursor', 'topic', 'parking_space', 'spot_label', 'booking', 'payload', 'created_at']
        read_only_fields = fields

# ==================== NOTIFICATIONS/MODELS.PY ====================
from django.db import models
from users.models import CustomUser


class Notification(models.Model):
    """In-app notification for a driver or host"""
    TYPE_CHOICES = (
        ('booking_created', 'Booking Created'),
        ('booking_confirmed', 'Booking Confirmed'),
        ('booking_cancelled', 'Booking Cancelled'),
        ('booking_completed', 'Booking Completed'),
        ('payment_received', 'Payment Received'),
        ('payment_failed', 'Payment Failed'),
        ('spot_reserved', 'Spot Reserved'),
        ('spot_released', 'Spot Released'),
    )

    user = models.ForeignKey(CustomUser, on_delete=models.CASCADE, related_name='notifications')
    type = models.CharField(max_length=30, choices=TYPE_CHOICES)
    title = models.CharField(max_length=200)
    message = models.TextField()

    booking = models.ForeignKey('bookings.Booking', on_delete=models.SET_NULL, null=True, blank=True, related_name='notifications')
    parking_space = models.ForeignKey('parking.ParkingSpace', on_delete=models.SET_NULL, null=True, blank=True, related_name='+')

    read = models.BooleanField(default=False, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', 'read']),
        ]

    def __str__(self):
        return f"{self.type} for {self.user.username}: {self.title}"


class ChangeEvent(models.Model):
    """Append-only feed of availability and booking changes.

    The primary key is the cursor clients poll with (``?after=<id>``).
    """
    TOPIC_CHOICES = (
        ('spot', 'Spot'),
        ('booking', 'Booking'),
    )

    topic = models.CharField(max_length=10, choices=TOPIC_CHOICES, db_index=True)
    parking_space = models.ForeignKey('parking.ParkingSpace', on_delete=models.CASCADE, related_name='change_events')
    spot_label = models.CharField(max_length=50)
    booking = models.ForeignKey('bookings.Booking', on_delete=models.CASCADE, null=True, blank=True, related_name='change_events')
    payload = models.JSONField(default=dict)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['id']

    def __str__(self):
        return f"#{self.id} {self.topic} {self.parking_space_id}/{self.spot_label}"

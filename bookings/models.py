import uuid
from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings
from django.db import models
from django.utils import timezone
from users.models import CustomUser
from parking.models import ParkingSpace


class SpotHold(models.Model):
    """Short-lived unpaid claim on a spot (the driver's cart).

    Ownership is kept server-side, keyed by the signed-in driver or by the
    anonymous session key the client sends.
    """
    STATUS_CHOICES = (
        ('active', 'Active'),
        ('released', 'Released'),
        ('converted', 'Converted to Booking'),
        ('expired', 'Expired'),
    )

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    parking_space = models.ForeignKey(ParkingSpace, on_delete=models.CASCADE, related_name='holds')
    spot_label = models.CharField(max_length=50)

    driver = models.ForeignKey(CustomUser, on_delete=models.CASCADE, null=True, blank=True, related_name='spot_holds')
    session_key = models.CharField(max_length=64, blank=True, db_index=True)

    expires_at = models.DateTimeField(db_index=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active', db_index=True)
    booking = models.OneToOneField(
        'Booking',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='source_hold'
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'expires_at']),
        ]

    def __str__(self):
        return f"Hold {self.id} on {self.parking_space_id}/{self.spot_label} ({self.status})"

    def is_expired(self, now=None):
        return self.expires_at <= (now or timezone.now())

    def is_owned_by(self, driver=None, session_key=''):
        if driver is not None and getattr(driver, 'is_authenticated', False) and self.driver_id == driver.id:
            return True
        return bool(session_key) and self.session_key == session_key


class Booking(models.Model):
    STATUS_CHOICES = (
        ('pending', 'Pending Payment'),
        ('confirmed', 'Confirmed'),
        ('active', 'Active'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
    )
    PAYMENT_STATUS_CHOICES = (
        ('pending', 'Pending'),
        ('paid', 'Paid'),
        ('failed', 'Failed'),
        ('refunded', 'Refunded'),
    )

    TERMINAL_STATUSES = ('completed', 'cancelled')
    # Allowed status moves; anything else is an InvalidTransition
    TRANSITIONS = {
        'pending': ('confirmed', 'cancelled'),
        'confirmed': ('active', 'completed', 'cancelled'),
        'active': ('completed',),
        'completed': (),
        'cancelled': (),
    }

    # Relations
    driver = models.ForeignKey(CustomUser, on_delete=models.CASCADE, related_name='driver_bookings')
    host = models.ForeignKey(CustomUser, on_delete=models.CASCADE, related_name='host_bookings')
    parking_space = models.ForeignKey(ParkingSpace, on_delete=models.CASCADE, related_name='bookings')
    spot_label = models.CharField(max_length=50)

    # Booking window
    start_datetime = models.DateTimeField(db_index=True)
    end_datetime = models.DateTimeField(db_index=True)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending', db_index=True)
    payment_status = models.CharField(max_length=20, choices=PAYMENT_STATUS_CHOICES, default='pending', db_index=True)

    total_price = models.DecimalField(max_digits=10, decimal_places=2)

    # Gateway correlation (latest STK push attempt)
    checkout_request_id = models.CharField(max_length=100, null=True, blank=True, unique=True)
    merchant_request_id = models.CharField(max_length=100, blank=True)
    mpesa_receipt_number = models.CharField(max_length=50, blank=True)
    payment_error = models.CharField(max_length=255, blank=True)

    # {"plate": ..., "make": ..., "model": ..., "color": ...}
    car_details = models.JSONField(default=dict, blank=True)
    cancellation_reason = models.CharField(max_length=255, blank=True)

    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['driver', 'status']),
            models.Index(fields=['parking_space', 'spot_label', 'status']),
            models.Index(fields=['status', 'end_datetime']),
        ]

    def __str__(self):
        return f"Booking {self.id} - {self.driver.username} at {self.parking_space.title} [{self.spot_label}]"

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES

    def can_transition_to(self, new_status):
        return new_status in self.TRANSITIONS.get(self.status, ())

    def payment_deadline(self):
        """After this instant an unpaid booking is cancelled by the sweeper"""
        return self.created_at + timedelta(minutes=settings.PAYMENT_GRACE_PERIOD_MINUTES)

    @staticmethod
    def calculate_price(price_per_hour, start_datetime, end_datetime):
        """Hourly rate times duration, rounded to cents"""
        hours = Decimal(str((end_datetime - start_datetime).total_seconds())) / Decimal(3600)
        return (Decimal(price_per_hour) * hours).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)

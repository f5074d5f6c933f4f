# ==================== PARKING/MODELS.PY ====================
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models, transaction
from django.utils import timezone
from users.models import CustomUser


class ParkingSpaceManager(models.Manager):

    @transaction.atomic
    def create_with_spots(self, owner, spot_labels, **fields):
        """List a space together with one ledger entry per spot label"""
        labels = [label.strip() for label in spot_labels]
        if not labels or any(not label for label in labels):
            raise ValidationError("A space needs at least one non-empty spot label")
        if len(set(labels)) != len(labels):
            raise ValidationError("Spot labels must be unique within a space")

        space = self.create(owner=owner, **fields)
        ParkingSpot.objects.bulk_create([
            ParkingSpot(space=space, label=label, position=index)
            for index, label in enumerate(labels)
        ])
        return space


class ParkingSpace(models.Model):
    AVAILABILITY_CHOICES = (
        ('available', 'Available'),
        ('occupied', 'Occupied'),
    )

    owner = models.ForeignKey(CustomUser, on_delete=models.CASCADE, related_name='owned_parking_spaces')

    title = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    address = models.CharField(max_length=500)
    city = models.CharField(max_length=100, db_index=True)

    price_per_hour = models.DecimalField(max_digits=10, decimal_places=2, validators=[MinValueValidator(0)])

    # Derived from the spots: available iff at least one spot is available
    availability = models.CharField(max_length=20, choices=AVAILABILITY_CHOICES, default='available', db_index=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ParkingSpaceManager()

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['city']),
            models.Index(fields=['created_at']),
        ]

    def __str__(self):
        return f"{self.title} - {self.address}"

    @property
    def total_spots(self):
        return self.spots.count()


class ParkingSpot(models.Model):
    """One physically bookable position inside a space.

    State is a tagged variant, each tag owning exactly its fields:

    * ``available`` - no holder, no ``held_until``
    * ``held``      - ``hold_reference`` and ``held_until``
    * ``booked``    - ``booking`` and ``held_until`` (the booking window end)

    ``version`` is bumped by every ledger write and is the compare-and-swap
    guard used by :class:`parking.ledger.SpotLedger`.
    """
    STATE_AVAILABLE = 'available'
    STATE_HELD = 'held'
    STATE_BOOKED = 'booked'
    STATE_CHOICES = (
        (STATE_AVAILABLE, 'Available'),
        (STATE_HELD, 'Held'),
        (STATE_BOOKED, 'Booked'),
    )

    space = models.ForeignKey(ParkingSpace, on_delete=models.CASCADE, related_name='spots')
    label = models.CharField(max_length=50)
    position = models.PositiveIntegerField(default=0)

    state = models.CharField(max_length=10, choices=STATE_CHOICES, default=STATE_AVAILABLE, db_index=True)
    hold_reference = models.UUIDField(null=True, blank=True)
    booking = models.ForeignKey(
        'bookings.Booking',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    held_until = models.DateTimeField(null=True, blank=True, db_index=True)

    version = models.PositiveIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['space', 'position', 'label']
        constraints = [
            models.UniqueConstraint(fields=['space', 'label'], name='unique_spot_label_per_space'),
        ]

    def __str__(self):
        return f"{self.space_id}/{self.label} ({self.state})"

    def clean(self):
        if self.state == self.STATE_AVAILABLE:
            if self.hold_reference or self.booking_id or self.held_until:
                raise ValidationError("An available spot cannot carry a holder or expiry")
        elif self.state == self.STATE_HELD:
            if not self.hold_reference or not self.held_until or self.booking_id:
                raise ValidationError("A held spot needs a hold reference and an expiry, and no booking")
        elif self.state == self.STATE_BOOKED:
            if not self.booking_id or self.hold_reference:
                raise ValidationError("A booked spot needs a booking and no hold reference")

    @property
    def is_available(self):
        return self.state == self.STATE_AVAILABLE

    @property
    def holder_reference(self):
        if self.state == self.STATE_HELD:
            return str(self.hold_reference)
        if self.state == self.STATE_BOOKED:
            return self.booking_id
        return None

    def is_expired(self, now=None):
        """Claim whose time has elapsed; the sweeper has not released it yet"""
        if self.is_available or self.held_until is None:
            return False
        return self.held_until <= (now or timezone.now())

    def holder_is_finished(self):
        """Booked by a booking that is gone or already completed/cancelled"""
        if self.state != self.STATE_BOOKED:
            return False
        return self.booking is None or self.booking.is_terminal

    def is_claimable(self, now=None, replacing=None):
        if self.is_available or self.is_expired(now) or self.holder_is_finished():
            return True
        return replacing is not None and self.state == self.STATE_HELD and self.hold_reference == replacing

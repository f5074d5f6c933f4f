# ==================== PARKING/LEDGER.PY ====================
import logging
import uuid

from django.db import transaction
from django.db.models import Case, Exists, F, OuterRef, Q, Value, When
from django.utils import timezone

from utils.exceptions import NotFound, SpotConflict
from .models import ParkingSpace, ParkingSpot
from .signals import spot_changed

logger = logging.getLogger(__name__)

# A lost compare-and-swap is retried once before surfacing a conflict
CAS_ATTEMPTS = 2


def _as_uuid(value):
    if value is None or isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))


class SpotLedger:
    """Authoritative spot occupancy.

    Every mutation is a single conditional UPDATE guarded by the spot's
    ``version``. There is no lock wider than one spot row.
    """

    @staticmethod
    def get_space(space_id):
        try:
            return ParkingSpace.objects.get(pk=space_id)
        except (ParkingSpace.DoesNotExist, ValueError):
            raise NotFound(f"Parking space {space_id} not found")

    @classmethod
    def get_spot(cls, space_id, spot_label):
        try:
            return ParkingSpot.objects.select_related('booking').get(space_id=space_id, label=spot_label)
        except (ParkingSpot.DoesNotExist, ValueError):
            cls.get_space(space_id)
            raise NotFound(f"Spot {spot_label} not found in space {space_id}")

    @staticmethod
    def _compare_and_swap(spot, **changes):
        """Write ``changes`` only if nobody touched the spot since it was read"""
        updated = ParkingSpot.objects.filter(pk=spot.pk, version=spot.version).update(
            version=F('version') + 1,
            updated_at=timezone.now(),
            **changes
        )
        return updated == 1

    @staticmethod
    def _refresh_availability(space_id):
        available_spot = ParkingSpot.objects.filter(
            space=OuterRef('pk'),
            state=ParkingSpot.STATE_AVAILABLE
        )
        ParkingSpace.objects.filter(pk=space_id).update(
            availability=Case(
                When(Exists(available_spot), then=Value('available')),
                default=Value('occupied'),
            ),
            updated_at=timezone.now()
        )

    @classmethod
    def _publish(cls, spot):
        spot.refresh_from_db()
        availability = ParkingSpace.objects.values_list('availability', flat=True).get(pk=spot.space_id)
        spot_changed.send(
            sender=cls,
            space_id=spot.space_id,
            spot_label=spot.label,
            state=spot.state,
            held_until=spot.held_until,
            availability=availability,
        )
        return spot

    @staticmethod
    def _held_by(spot, hold_reference=None, booking_id=None):
        if hold_reference is None and booking_id is None:
            return True
        if hold_reference is not None:
            return spot.state == ParkingSpot.STATE_HELD and spot.hold_reference == hold_reference
        return spot.state == ParkingSpot.STATE_BOOKED and spot.booking_id == booking_id

    @classmethod
    def claim(cls, space_id, spot_label, until, *, hold_reference=None, booking=None, replacing=None, now=None):
        """Claim a spot for a hold or a booking until ``until``.

        Succeeds when the spot is available, when its current claim has
        elapsed, or when it is held by ``replacing`` (a hold being turned into
        a booking). Raises ``SpotConflict`` otherwise, without touching state.
        """
        if (hold_reference is None) == (booking is None):
            raise ValueError("claim needs exactly one of hold_reference or booking")
        now = now or timezone.now()
        if until <= now:
            raise ValueError("claim must end in the future")

        replacing = _as_uuid(replacing)
        if hold_reference is not None:
            changes = {
                'state': ParkingSpot.STATE_HELD,
                'hold_reference': _as_uuid(hold_reference),
                'booking': None,
                'held_until': until,
            }
        else:
            changes = {
                'state': ParkingSpot.STATE_BOOKED,
                'hold_reference': None,
                'booking': booking,
                'held_until': until,
            }

        with transaction.atomic():
            for attempt in range(CAS_ATTEMPTS):
                spot = cls.get_spot(space_id, spot_label)
                if not spot.is_claimable(now, replacing=replacing):
                    logger.warning(
                        f"Claim rejected for spot {spot_label} in space {space_id}: "
                        f"{spot.state} by {spot.holder_reference} until {spot.held_until}"
                    )
                    raise SpotConflict()
                if cls._compare_and_swap(spot, **changes):
                    break
                logger.info(f"Lost compare-and-swap on spot {spot_label} in space {space_id} (attempt {attempt + 1})")
            else:
                raise SpotConflict()

            cls._refresh_availability(space_id)
            spot = cls._publish(spot)

        logger.info(f"Claimed spot {spot_label} in space {space_id} ({spot.state}) until {until}")
        return spot

    @classmethod
    def release(cls, space_id, spot_label, *, hold_reference=None, booking=None):
        """Return a spot to inventory.

        Idempotent: releasing an available spot is a no-op. With a holder,
        only that holder's claim is released. Returns True if the spot changed.
        """
        hold_reference = _as_uuid(hold_reference)
        booking_id = getattr(booking, 'pk', booking)

        with transaction.atomic():
            for attempt in range(CAS_ATTEMPTS):
                spot = cls.get_spot(space_id, spot_label)
                if spot.is_available:
                    return False
                if not cls._held_by(spot, hold_reference, booking_id):
                    logger.info(
                        f"Spot {spot_label} in space {space_id} is now held by {spot.holder_reference}, "
                        f"not releasing"
                    )
                    return False
                released = cls._compare_and_swap(
                    spot,
                    state=ParkingSpot.STATE_AVAILABLE,
                    hold_reference=None,
                    booking=None,
                    held_until=None
                )
                if released:
                    break
                logger.info(f"Lost compare-and-swap releasing spot {spot_label} in space {space_id} (attempt {attempt + 1})")
            else:
                raise SpotConflict()

            cls._refresh_availability(space_id)
            cls._publish(spot)

        logger.info(f"Released spot {spot_label} in space {space_id}")
        return True

    @classmethod
    def release_if_unchanged(cls, spot):
        """Free ``spot`` only if it still is exactly as it was read (single attempt).

        Used by the sweeper for claims it has already judged stale: if anyone
        touched the spot in between, the sweeper leaves it alone.
        """
        with transaction.atomic():
            released = cls._compare_and_swap(
                spot,
                state=ParkingSpot.STATE_AVAILABLE,
                hold_reference=None,
                booking=None,
                held_until=None
            )
            if not released:
                logger.info(f"Spot {spot.label} in space {spot.space_id} changed under the sweeper, skipping")
                return False
            cls._refresh_availability(spot.space_id)
            cls._publish(spot)

        logger.info(f"Released stale claim on spot {spot.label} in space {spot.space_id}")
        return True

    @classmethod
    def query(cls, space_id, as_of=None):
        """All spots of a space; ``available_as_of`` treats elapsed claims as free"""
        cls.get_space(space_id)
        as_of = as_of or timezone.now()
        spots = list(ParkingSpot.objects.filter(space_id=space_id))
        for spot in spots:
            spot.available_as_of = spot.is_available or spot.is_expired(as_of)
        return spots

    @classmethod
    def available_spots(cls, space_id, start, end, now=None):
        """Spots a booking for [start, end) can claim right now.

        A spot carries a single claim, so anything still held or booked counts
        as taken even when that claim ends before ``start``. The filter mirrors
        ``ParkingSpot.is_claimable``.
        """
        from bookings.models import Booking

        if end <= start:
            raise ValueError("end must be after start")
        cls.get_space(space_id)
        now = now or timezone.now()
        return list(
            ParkingSpot.objects.filter(space_id=space_id).filter(
                Q(state=ParkingSpot.STATE_AVAILABLE)
                | Q(held_until__lte=now)
                | Q(state=ParkingSpot.STATE_BOOKED, booking__isnull=True)
                | Q(state=ParkingSpot.STATE_BOOKED, booking__status__in=Booking.TERMINAL_STATUSES)
            )
        )

    @staticmethod
    def stale_spots(now):
        """Claimed spots the expiry sweep may free: elapsed holds, and bookings that are gone or finished"""
        from bookings.models import Booking

        return ParkingSpot.objects.filter(
            Q(state=ParkingSpot.STATE_HELD, held_until__lte=now)
            | Q(state=ParkingSpot.STATE_BOOKED, booking__isnull=True)
            | Q(state=ParkingSpot.STATE_BOOKED, booking__status__in=Booking.TERMINAL_STATUSES)
        ).select_related('booking')

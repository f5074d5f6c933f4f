# ==================== BOOKINGS/SERVICES.PY ====================
import logging
import uuid
from datetime import timedelta

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import Q
from django.utils import timezone
from rest_framework.exceptions import PermissionDenied, ValidationError

from parking.ledger import SpotLedger, CAS_ATTEMPTS
from utils.exceptions import InvalidTransition, NotFound, SpotConflict, SpotUnavailable
from .models import Booking, SpotHold
from .signals import booking_changed, hold_expired

logger = logging.getLogger(__name__)


class HoldService:
    """Cart-stage holds layered on the ledger's claim"""

    @staticmethod
    def default_ttl():
        return timedelta(minutes=settings.HOLD_TTL_MINUTES)

    @staticmethod
    def get_hold(hold_id):
        try:
            return SpotHold.objects.get(pk=hold_id)
        except (SpotHold.DoesNotExist, DjangoValidationError, ValueError):
            raise NotFound(f"Hold {hold_id} not found")

    @staticmethod
    def _authenticated(driver):
        if driver is not None and getattr(driver, 'is_authenticated', False):
            return driver
        return None

    @classmethod
    def _owner_filter(cls, driver=None, session_key=''):
        driver = cls._authenticated(driver)
        condition = Q(pk__in=[])
        if driver is not None:
            condition |= Q(driver=driver)
        if session_key:
            condition |= Q(session_key=session_key)
        return condition

    @classmethod
    def place_hold(cls, space_id, spot_label, *, ttl=None, driver=None, session_key='', now=None):
        """Claim a spot for ``ttl`` (default HOLD_TTL_MINUTES) without payment.

        Anonymous callers are identified by ``session_key`` only. A caller
        re-holding a spot it already holds gets a fresh hold with a new expiry.
        """
        now = now or timezone.now()
        if ttl is None:
            ttl = cls.default_ttl()
        if ttl <= timedelta(0):
            raise ValidationError("Hold TTL must be positive")
        driver = cls._authenticated(driver)
        if driver is None and not session_key:
            raise ValidationError("A hold needs a signed-in driver or a session key")

        existing = SpotHold.objects.filter(
            cls._owner_filter(driver, session_key),
            parking_space_id=space_id,
            spot_label=spot_label,
            status='active',
        ).first()

        hold_id = uuid.uuid4()
        expires_at = now + ttl
        with transaction.atomic():
            SpotLedger.claim(
                space_id, spot_label, expires_at,
                hold_reference=hold_id,
                replacing=existing.id if existing else None,
                now=now
            )
            if existing:
                SpotHold.objects.filter(pk=existing.pk, status='active').update(status='released', updated_at=now)
            hold = SpotHold.objects.create(
                id=hold_id,
                parking_space_id=space_id,
                spot_label=spot_label,
                driver=driver,
                session_key=session_key,
                expires_at=expires_at,
            )

        logger.info(f"Hold {hold.id} placed on spot {spot_label} in space {space_id} until {expires_at}")
        return hold

    @classmethod
    def release_hold(cls, hold_id, *, driver=None, session_key='', now=None):
        """Drop a hold and free its spot. Releasing twice is a no-op."""
        now = now or timezone.now()
        hold = cls.get_hold(hold_id)
        if not hold.is_owned_by(cls._authenticated(driver), session_key):
            raise PermissionDenied("You can only release your own holds")

        with transaction.atomic():
            SpotHold.objects.filter(pk=hold.pk, status='active').update(status='released', updated_at=now)
            SpotLedger.release(hold.parking_space_id, hold.spot_label, hold_reference=hold.id)

        hold.refresh_from_db()
        logger.info(f"Hold {hold.id} released ({hold.status})")
        return hold

    @classmethod
    def expire_hold(cls, hold, now=None):
        """Sweeper path: mark an overdue hold expired and free its spot if it still owns it"""
        now = now or timezone.now()
        with transaction.atomic():
            expired = SpotHold.objects.filter(pk=hold.pk, status='active').update(status='expired', updated_at=now)
            released = SpotLedger.release(hold.parking_space_id, hold.spot_label, hold_reference=hold.id)
            if expired:
                hold.status = 'expired'
                hold_expired.send(sender=cls, hold=hold)
        if expired:
            logger.info(f"Hold {hold.id} expired")
        return released

    @classmethod
    def active_holds(cls, driver=None, session_key='', now=None):
        now = now or timezone.now()
        return SpotHold.objects.filter(
            cls._owner_filter(driver, session_key),
            status='active',
            expires_at__gt=now,
        ).select_related('parking_space')


class BookingService:
    """Booking creation and the status state machine"""

    # Statuses a user may request directly, and who may request them
    USER_TRANSITIONS = {
        'cancelled': ('driver', 'host'),
        'active': ('host',),
        'completed': ('host',),
    }

    @staticmethod
    def get_booking(booking_id):
        try:
            return Booking.objects.select_related('parking_space', 'driver', 'host').get(pk=booking_id)
        except (Booking.DoesNotExist, ValueError):
            raise NotFound(f"Booking {booking_id} not found")

    @staticmethod
    def _usable_hold(hold_id, space_id, spot_label, driver, session_key, now):
        hold = HoldService.get_hold(hold_id)
        if not hold.is_owned_by(driver, session_key):
            raise PermissionDenied("You can only check out your own holds")
        if str(hold.parking_space_id) != str(space_id) or hold.spot_label != spot_label:
            raise ValidationError("Hold does not match the requested spot")
        if hold.status != 'active' or hold.is_expired(now):
            # The spot may still be free; the claim below decides
            return None
        return hold

    @classmethod
    def create_booking(cls, space_id, spot_label, driver, start_datetime, end_datetime, *,
                       car_details=None, hold_id=None, session_key='', now=None):
        """Book a spot for [start, end) and leave it pending payment.

        The spot is claimed until ``end_datetime``. If another live hold or
        booking owns it, ``SpotUnavailable`` is raised and nothing is written.
        Without ``hold_id`` the caller's own live hold on the spot, if any,
        is the one converted.
        """
        now = now or timezone.now()
        if end_datetime <= start_datetime:
            raise ValidationError("End time must be after start time")
        if end_datetime <= now:
            raise ValidationError("Booking window has already ended")

        space = SpotLedger.get_space(space_id)
        if space.owner_id == driver.id:
            raise ValidationError("Hosts cannot book their own space")

        if hold_id:
            hold = cls._usable_hold(hold_id, space.id, spot_label, driver, session_key, now)
        else:
            hold = HoldService.active_holds(driver, session_key, now=now).filter(
                parking_space_id=space.id, spot_label=spot_label
            ).first()

        with transaction.atomic():
            booking = Booking.objects.create(
                driver=driver,
                host=space.owner,
                parking_space=space,
                spot_label=spot_label,
                start_datetime=start_datetime,
                end_datetime=end_datetime,
                total_price=Booking.calculate_price(space.price_per_hour, start_datetime, end_datetime),
                car_details=car_details or {},
                created_at=now,
            )
            try:
                SpotLedger.claim(
                    space.id, spot_label, end_datetime,
                    booking=booking,
                    replacing=hold.id if hold else None,
                    now=now
                )
            except SpotConflict:
                logger.warning(f"Booking rejected: spot {spot_label} in space {space.id} is taken")
                raise SpotUnavailable()

            if hold:
                SpotHold.objects.filter(pk=hold.pk, status='active').update(
                    status='converted', booking=booking, updated_at=now
                )
            booking_changed.send(sender=cls, booking=booking, previous_status=None, previous_payment_status=None)

        logger.info(f"Booking {booking.id} created for spot {spot_label} in space {space.id}: KES {booking.total_price}")
        return booking

    @classmethod
    def update_status(cls, booking_id, new_status, *, actor=None, reason='', now=None):
        """Move a booking along ``Booking.TRANSITIONS``.

        Asking for the current status is a no-op. The write is conditional on
        the status that was read, so a concurrent transition is detected and
        the move is re-evaluated once. With an ``actor`` the request is also
        checked against ``USER_TRANSITIONS``.
        """
        now = now or timezone.now()
        if new_status not in dict(Booking.STATUS_CHOICES):
            raise InvalidTransition(f"Unknown booking status '{new_status}'")
        if actor is not None:
            reason = cls._check_actor(booking_id, new_status, actor, reason, now)

        for attempt in range(CAS_ATTEMPTS):
            booking = cls.get_booking(booking_id)
            previous_status = booking.status
            if previous_status == new_status:
                return booking
            if not booking.can_transition_to(new_status):
                raise InvalidTransition(f"Booking {booking.id} cannot move from {previous_status} to {new_status}")

            changes = {'status': new_status, 'updated_at': now}
            if new_status == 'cancelled':
                changes['cancellation_reason'] = reason[:255]

            with transaction.atomic():
                updated = Booking.objects.filter(pk=booking.pk, status=previous_status).update(**changes)
                if updated:
                    booking.refresh_from_db()
                    if booking.is_terminal:
                        SpotLedger.release(booking.parking_space_id, booking.spot_label, booking=booking)
                    booking_changed.send(
                        sender=cls,
                        booking=booking,
                        previous_status=previous_status,
                        previous_payment_status=booking.payment_status,
                    )
                    logger.info(f"Booking {booking.id}: {previous_status} -> {new_status}")
                    return booking

            logger.info(f"Booking {booking_id} changed while moving to {new_status} (attempt {attempt + 1})")

        raise InvalidTransition(f"Booking {booking_id} changed concurrently, reload and retry")

    @classmethod
    def _check_actor(cls, booking_id, new_status, actor, reason, now):
        """Role check for user-initiated moves; returns the cancellation reason to record"""
        booking = cls.get_booking(booking_id)
        if actor == booking.driver:
            role = 'driver'
        elif actor == booking.host:
            role = 'host'
        else:
            raise PermissionDenied()

        if booking.status != new_status and not booking.can_transition_to(new_status):
            raise InvalidTransition(f"Booking {booking.id} cannot move from {booking.status} to {new_status}")
        if role not in cls.USER_TRANSITIONS.get(new_status, ()):
            raise PermissionDenied(f"A {role} cannot set a booking to {new_status}")
        if new_status == 'active' and now < booking.start_datetime:
            raise InvalidTransition(f"Booking {booking.id} cannot be checked in before it starts")
        if new_status == 'completed' and now < booking.end_datetime:
            raise InvalidTransition(f"Booking {booking.id} cannot be checked out before it ends")

        if new_status == 'cancelled' and not reason:
            reason = 'cancelled by driver' if role == 'driver' else 'declined by host'
        return reason

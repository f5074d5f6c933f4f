# ==================== BOOKINGS/SWEEPER.PY ====================
import logging
from dataclasses import dataclass, asdict
from datetime import timedelta

from django.conf import settings
from django.core.cache import cache
from django.db.models import Q
from django.utils import timezone

from parking.ledger import SpotLedger
from utils.exceptions import InvalidTransition, SpotConflict
from .models import Booking, SpotHold
from .services import BookingService, HoldService

logger = logging.getLogger(__name__)

SWEEP_LOCK_KEY = 'bookings:expiry-sweep:lock'


@dataclass
class SweepReport:
    expired_holds: int = 0
    released_spots: int = 0
    activated_bookings: int = 0
    completed_bookings: int = 0
    cancelled_bookings: int = 0

    def as_dict(self):
        return asdict(self)


class ExpirySweeper:
    """Resolves every time-based transition as of ``now``.

    Each step is a per-row conditional write, so two sweeps running at the
    same time just make each other's work a no-op.
    """

    def __init__(self, now=None):
        self.now = now or timezone.now()
        self.report = SweepReport()

    def run(self):
        self.finish_ended_bookings()
        self.activate_started_bookings()
        self.cancel_unpaid_bookings()
        self.expire_holds()
        self.release_stale_spots()
        logger.info(f"Sweep as of {self.now.isoformat()}: {self.report}")
        return self.report

    def _transition(self, booking, new_status, reason=''):
        try:
            BookingService.update_status(booking.id, new_status, reason=reason, now=self.now)
        except (InvalidTransition, SpotConflict) as e:
            logger.warning(f"Sweep skipped booking {booking.id} -> {new_status}: {e}")
            return False
        return True

    def finish_ended_bookings(self):
        ended = Booking.objects.filter(status__in=['confirmed', 'active'], end_datetime__lte=self.now)
        for booking in ended:
            if self._transition(booking, 'completed'):
                self.report.completed_bookings += 1

    def activate_started_bookings(self):
        started = Booking.objects.filter(
            status='confirmed',
            start_datetime__lte=self.now,
            end_datetime__gt=self.now
        )
        for booking in started:
            if self._transition(booking, 'active'):
                self.report.activated_bookings += 1

    def cancel_unpaid_bookings(self):
        deadline = self.now - timedelta(minutes=settings.PAYMENT_GRACE_PERIOD_MINUTES)
        unpaid = Booking.objects.filter(status='pending').filter(
            Q(created_at__lte=deadline) | Q(end_datetime__lte=self.now)
        ).exclude(payment_status='paid')
        for booking in unpaid:
            if booking.end_datetime <= self.now:
                reason = 'booking window ended without payment'
            else:
                reason = 'payment not received in time'
            if self._transition(booking, 'cancelled', reason=reason):
                self.report.cancelled_bookings += 1

    def expire_holds(self):
        overdue = SpotHold.objects.filter(status='active', expires_at__lte=self.now)
        for hold in overdue:
            try:
                released = HoldService.expire_hold(hold, now=self.now)
            except SpotConflict as e:
                logger.warning(f"Sweep could not release hold {hold.id}: {e}")
                continue
            self.report.expired_holds += 1
            if released:
                self.report.released_spots += 1

    def release_stale_spots(self):
        for spot in SpotLedger.stale_spots(self.now):
            if SpotLedger.release_if_unchanged(spot):
                self.report.released_spots += 1


def run_sweep(now=None, force=False):
    """Run one sweep unless another started within SWEEP_LOCK_SECONDS.

    Timer and client triggers share the lock, so bursts of triggers cost one
    sweep. Returns the report, or None when rate-limited.
    """
    if not force and not cache.add(SWEEP_LOCK_KEY, timezone.now().isoformat(), settings.SWEEP_LOCK_SECONDS):
        logger.debug("Sweep skipped: another sweep ran recently")
        return None
    return ExpirySweeper(now=now).run()

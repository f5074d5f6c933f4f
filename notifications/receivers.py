# ==================== NOTIFICATIONS/RECEIVERS.PY ====================
from django.dispatch import receiver
from django.utils import timezone
import logging

from bookings.signals import booking_changed, hold_expired
from parking.signals import spot_changed
from .models import ChangeEvent
from .services import NotificationService

logger = logging.getLogger(__name__)


@receiver(spot_changed)
def record_spot_change(sender, space_id, spot_label, state, held_until, availability, **kwargs):
    ChangeEvent.objects.create(
        topic='spot',
        parking_space_id=space_id,
        spot_label=spot_label,
        payload={
            'state': state,
            'held_until': held_until.isoformat() if held_until else None,
            'availability': availability,
        },
    )


@receiver(booking_changed)
def record_booking_change(sender, booking, previous_status=None, previous_payment_status=None, **kwargs):
    ChangeEvent.objects.create(
        topic='booking',
        parking_space_id=booking.parking_space_id,
        spot_label=booking.spot_label,
        booking=booking,
        payload={
            'status': booking.status,
            'payment_status': booking.payment_status,
            'previous_status': previous_status,
        },
    )


@receiver(booking_changed)
def notify_booking_parties(sender, booking, previous_status=None, previous_payment_status=None, **kwargs):
    """Tell driver and host about a booking's new state"""
    ref = str(booking.id)
    space = booking.parking_space
    notify = NotificationService.notify

    if previous_status is None:
        notify(booking.driver, 'spot_reserved', 'Spot Reserved',
               f"Spot {booking.spot_label} at {space.title} is reserved for you. "
               f"Complete the M-Pesa payment by {timezone.localtime(booking.payment_deadline()):%H:%M} to keep it.",
               booking=booking, parking_space=space)
        notify(booking.host, 'booking_created', 'New Booking',
               f"Spot {booking.spot_label} at {space.title} was booked from {booking.start_datetime} "
               f"to {booking.end_datetime}. Awaiting payment.",
               booking=booking, parking_space=space)
        return

    if booking.status != previous_status:
        if booking.status == 'confirmed':
            notify(booking.driver, 'booking_confirmed', 'Payment Successful',
                   f"Your payment of KES {booking.total_price} for booking {ref} has been received. "
                   f"Spot {booking.spot_label} is yours.",
                   booking=booking, parking_space=space)
            notify(booking.host, 'payment_received', 'Payment Received',
                   f"You received KES {booking.total_price} for booking {ref}.",
                   booking=booking, parking_space=space)
        elif booking.status == 'cancelled':
            reason = booking.cancellation_reason or 'cancelled'
            notify(booking.driver, 'booking_cancelled', 'Booking Cancelled',
                   f"Booking {ref} for spot {booking.spot_label} at {space.title} was cancelled: {reason}.",
                   booking=booking, parking_space=space)
            notify(booking.host, 'booking_cancelled', 'Booking Cancelled',
                   f"Booking {ref} for spot {booking.spot_label} was cancelled: {reason}.",
                   booking=booking, parking_space=space)
        elif booking.status == 'completed':
            notify(booking.driver, 'booking_completed', 'Booking Completed',
                   f"Your booking at {space.title} has ended. Please review your parking experience.",
                   booking=booking, parking_space=space)
        return

    if booking.payment_status == previous_payment_status:
        return

    if booking.payment_status == 'failed':
        notify(booking.driver, 'payment_failed', 'Payment Failed',
               f"Payment not received for booking {ref}: {booking.payment_error or 'no reason given'}. "
               f"Please try again.",
               booking=booking, parking_space=space)
    elif booking.payment_status == 'paid' and booking.status == 'cancelled':
        logger.error(f"Payment received for cancelled booking {booking.id}, needs manual refund")
        for user in (booking.driver, booking.host):
            notify(user, 'payment_received', 'Payment Received After Cancellation',
                   f"KES {booking.total_price} was received for booking {ref} after it was cancelled. "
                   f"Support will follow up with a refund.",
                   booking=booking, parking_space=space)


@receiver(hold_expired)
def notify_hold_expired(sender, hold, **kwargs):
    # Anonymous holds have nobody to tell
    if hold.driver_id is None:
        return
    NotificationService.notify(
        hold.driver, 'spot_released', 'Hold Expired',
        f"Your hold on spot {hold.spot_label} at {hold.parking_space.title} expired and the spot was released.",
        parking_space=hold.parking_space
    )

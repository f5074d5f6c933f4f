from datetime import timedelta
from decimal import Decimal

import pytest
from rest_framework.exceptions import PermissionDenied, ValidationError

from bookings.models import Booking, SpotHold
from bookings.services import BookingService, HoldService
from notifications.models import ChangeEvent, Notification
from parking.ledger import SpotLedger
from utils.exceptions import InvalidTransition, SpotUnavailable


@pytest.fixture
def booking(space, driver, window, now):
    start, end = window
    return BookingService.create_booking(space.id, 'A1', driver, start, end, now=now)


class TestBookingPrice:

    def test_hourly_rate_times_duration(self, now):
        price = Booking.calculate_price(Decimal('150.00'), now, now + timedelta(hours=2, minutes=30))
        assert price == Decimal('375.00')

    def test_rounded_to_cents(self, now):
        price = Booking.calculate_price(Decimal('100.00'), now, now + timedelta(minutes=20))
        assert price == Decimal('33.33')


@pytest.mark.django_db
class TestCreateBooking:

    def test_new_booking_is_pending_and_owns_the_spot(self, booking, window):
        # Then
        spot = SpotLedger.get_spot(booking.parking_space_id, 'A1')
        assert booking.status == 'pending'
        assert booking.payment_status == 'pending'
        assert booking.total_price == Decimal('450.00')
        assert spot.state == 'booked'
        assert spot.booking_id == booking.id
        assert spot.held_until == window[1]

    def test_checkout_converts_own_hold(self, space, driver, window, now):
        # Given
        hold = HoldService.place_hold(space.id, 'A1', driver=driver, now=now)

        # When
        booking = BookingService.create_booking(space.id, 'A1', driver, *window, hold_id=hold.id, now=now)

        # Then
        hold.refresh_from_db()
        assert hold.status == 'converted'
        assert hold.booking == booking

    def test_checkout_without_hold_id_converts_own_hold(self, space, driver, window, now):
        # Given the driver holds A1 but checks out without naming the hold
        hold = HoldService.place_hold(space.id, 'A1', driver=driver, now=now)

        # When
        booking = BookingService.create_booking(space.id, 'A1', driver, *window, now=now)

        # Then
        hold.refresh_from_db()
        assert hold.status == 'converted'
        assert hold.booking == booking
        assert SpotLedger.get_spot(space.id, 'A1').booking_id == booking.id

    def test_every_advertised_spot_can_be_booked(self, space, driver, another_driver, now):
        # Given A1 is held for 15 minutes and the listing is read for a later window
        HoldService.place_hold(space.id, 'A1', driver=another_driver, ttl=timedelta(minutes=15), now=now)
        start, end = now + timedelta(hours=1), now + timedelta(hours=3)
        advertised = [spot.label for spot in SpotLedger.available_spots(space.id, start, end, now=now)]

        # When
        bookings = [
            BookingService.create_booking(space.id, label, driver, start, end, now=now)
            for label in advertised
        ]

        # Then
        assert advertised == ['A2']
        assert [booking.spot_label for booking in bookings] == ['A2']

    def test_anonymous_hold_converts_with_session_key(self, space, driver, window, now):
        # Given a hold placed before signing in
        hold = HoldService.place_hold(space.id, 'A1', session_key='browser-1', now=now)

        # When
        booking = BookingService.create_booking(
            space.id, 'A1', driver, *window, hold_id=hold.id, session_key='browser-1', now=now
        )

        # Then
        assert SpotLedger.get_spot(space.id, 'A1').booking_id == booking.id

    def test_spot_held_by_someone_else_is_unavailable(self, space, driver, another_driver, window, now):
        # Given
        HoldService.place_hold(space.id, 'A1', driver=another_driver, now=now)

        # When
        with pytest.raises(SpotUnavailable):
            BookingService.create_booking(space.id, 'A1', driver, *window, now=now)

        # Then no booking row survives the conflict
        assert not Booking.objects.exists()

    def test_someone_elses_hold_cannot_be_checked_out(self, space, driver, another_driver, window, now):
        hold = HoldService.place_hold(space.id, 'A1', driver=another_driver, now=now)
        with pytest.raises(PermissionDenied):
            BookingService.create_booking(space.id, 'A1', driver, *window, hold_id=hold.id, now=now)

    def test_invalid_window_is_rejected(self, space, driver, now):
        with pytest.raises(ValidationError):
            BookingService.create_booking(space.id, 'A1', driver, now + timedelta(hours=2), now + timedelta(hours=1), now=now)
        with pytest.raises(ValidationError):
            BookingService.create_booking(space.id, 'A1', driver, now - timedelta(hours=3), now - timedelta(hours=1), now=now)

    def test_host_cannot_book_own_space(self, space, host, window, now):
        with pytest.raises(ValidationError):
            BookingService.create_booking(space.id, 'A1', host, *window, now=now)

    def test_creation_notifies_both_parties(self, booking, driver, host):
        assert Notification.objects.filter(user=driver, type='spot_reserved', booking=booking).exists()
        assert Notification.objects.filter(user=host, type='booking_created', booking=booking).exists()


@pytest.mark.django_db
class TestUpdateStatus:

    def test_pending_to_confirmed(self, booking):
        updated = BookingService.update_status(booking.id, 'confirmed')
        assert updated.status == 'confirmed'

    def test_illegal_transition_leaves_state_untouched(self, booking):
        # When
        with pytest.raises(InvalidTransition):
            BookingService.update_status(booking.id, 'completed')

        # Then
        booking.refresh_from_db()
        assert booking.status == 'pending'

    def test_terminal_statuses_have_no_way_out(self, booking):
        BookingService.update_status(booking.id, 'cancelled')
        for status in ('pending', 'confirmed', 'active', 'completed'):
            with pytest.raises(InvalidTransition):
                BookingService.update_status(booking.id, status)

    def test_same_status_is_a_no_op(self, booking):
        # Given
        events_before = ChangeEvent.objects.filter(topic='booking').count()

        # When
        result = BookingService.update_status(booking.id, 'pending')

        # Then
        assert result.status == 'pending'
        assert ChangeEvent.objects.filter(topic='booking').count() == events_before

    def test_unknown_status(self, booking):
        with pytest.raises(InvalidTransition):
            BookingService.update_status(booking.id, 'parked')

    def test_cancel_releases_the_spot(self, booking):
        # When
        BookingService.update_status(booking.id, 'cancelled', reason='changed plans')

        # Then
        booking.refresh_from_db()
        assert booking.cancellation_reason == 'changed plans'
        assert SpotLedger.get_spot(booking.parking_space_id, 'A1').is_available

    def test_completion_releases_the_spot(self, booking):
        BookingService.update_status(booking.id, 'confirmed')
        BookingService.update_status(booking.id, 'active')
        BookingService.update_status(booking.id, 'completed')
        assert SpotLedger.get_spot(booking.parking_space_id, 'A1').is_available

    def test_transitions_are_published(self, booking):
        BookingService.update_status(booking.id, 'confirmed')
        latest = ChangeEvent.objects.filter(topic='booking', booking=booking).last()
        assert latest.payload == {'status': 'confirmed', 'payment_status': 'pending', 'previous_status': 'pending'}


@pytest.mark.django_db
class TestActorRules:

    def test_driver_can_cancel(self, booking, driver):
        updated = BookingService.update_status(booking.id, 'cancelled', actor=driver)
        assert updated.status == 'cancelled'
        assert updated.cancellation_reason == 'cancelled by driver'

    def test_host_can_decline(self, booking, host, driver):
        # When
        BookingService.update_status(booking.id, 'cancelled', actor=host)

        # Then
        booking.refresh_from_db()
        assert booking.cancellation_reason == 'declined by host'
        assert Notification.objects.filter(user=driver, type='booking_cancelled').exists()

    def test_driver_cannot_confirm_without_paying(self, booking, driver):
        with pytest.raises(PermissionDenied):
            BookingService.update_status(booking.id, 'confirmed', actor=driver)

    def test_stranger_cannot_touch_booking(self, booking, another_driver):
        with pytest.raises(PermissionDenied):
            BookingService.update_status(booking.id, 'cancelled', actor=another_driver)

    def test_invalid_move_is_reported_before_role(self, booking, driver):
        BookingService.update_status(booking.id, 'cancelled', actor=driver)
        with pytest.raises(InvalidTransition):
            BookingService.update_status(booking.id, 'completed', actor=driver)

    def test_host_cannot_check_out_before_the_window_ends(self, booking, host):
        # Given
        BookingService.update_status(booking.id, 'confirmed')

        # When
        with pytest.raises(InvalidTransition):
            BookingService.update_status(booking.id, 'completed', actor=host)

        # Then the spot stays booked for the rest of the window
        booking.refresh_from_db()
        assert booking.status == 'confirmed'
        assert SpotLedger.get_spot(booking.parking_space_id, 'A1').booking_id == booking.id

    def test_host_cannot_check_in_before_the_window_starts(self, booking, host):
        BookingService.update_status(booking.id, 'confirmed')
        with pytest.raises(InvalidTransition):
            BookingService.update_status(booking.id, 'active', actor=host)

    def test_host_checks_in_and_out_within_the_window(self, booking, host, window):
        # Given
        start, end = window
        BookingService.update_status(booking.id, 'confirmed')

        # When
        BookingService.update_status(booking.id, 'active', actor=host, now=start + timedelta(minutes=5))
        completed = BookingService.update_status(booking.id, 'completed', actor=host, now=end)

        # Then
        assert completed.status == 'completed'
        assert SpotLedger.get_spot(booking.parking_space_id, 'A1').is_available


@pytest.mark.django_db
class TestHoldSurvivesConflict:

    def test_failed_checkout_keeps_hold_active(self, space, driver, another_driver, window, now):
        # Given D1 holds A1
        hold = HoldService.place_hold(space.id, 'A1', driver=driver, now=now)

        # When D2 tries to book it
        with pytest.raises(SpotUnavailable):
            BookingService.create_booking(space.id, 'A1', another_driver, *window, now=now)

        # Then
        hold.refresh_from_db()
        assert hold.status == 'active'
        assert SpotHold.objects.count() == 1

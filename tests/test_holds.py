from datetime import timedelta

import pytest
from rest_framework.exceptions import PermissionDenied, ValidationError

from bookings.models import SpotHold
from bookings.services import HoldService
from parking.ledger import SpotLedger
from utils.exceptions import NotFound, SpotConflict


@pytest.mark.django_db
class TestPlaceHold:

    def test_hold_claims_spot_for_default_ttl(self, space, driver, now):
        # When
        hold = HoldService.place_hold(space.id, 'A1', driver=driver, now=now)

        # Then
        spot = SpotLedger.get_spot(space.id, 'A1')
        assert hold.status == 'active'
        assert hold.expires_at == now + timedelta(minutes=15)
        assert spot.state == 'held'
        assert spot.hold_reference == hold.id
        assert spot.held_until == hold.expires_at

    def test_anonymous_hold_is_keyed_by_session(self, space, now):
        # When
        hold = HoldService.place_hold(space.id, 'A1', session_key='browser-123', now=now)

        # Then
        assert hold.driver is None
        assert list(HoldService.active_holds(session_key='browser-123', now=now)) == [hold]
        assert list(HoldService.active_holds(session_key='someone-else', now=now)) == []

    def test_hold_without_identity_is_rejected(self, space, now):
        with pytest.raises(ValidationError):
            HoldService.place_hold(space.id, 'A1', now=now)

    def test_competing_hold_conflicts_and_leaves_no_row(self, space, driver, another_driver, now):
        # Given
        HoldService.place_hold(space.id, 'A1', driver=driver, now=now)

        # When
        with pytest.raises(SpotConflict):
            HoldService.place_hold(space.id, 'A1', driver=another_driver, now=now)

        # Then
        assert not SpotHold.objects.filter(driver=another_driver).exists()

    def test_re_holding_own_spot_refreshes_the_hold(self, space, driver, now):
        # Given
        first = HoldService.place_hold(space.id, 'A1', driver=driver, now=now)
        later = now + timedelta(minutes=10)

        # When
        second = HoldService.place_hold(space.id, 'A1', driver=driver, now=later)

        # Then
        first.refresh_from_db()
        assert first.status == 'released'
        assert second.expires_at == later + timedelta(minutes=15)
        assert SpotLedger.get_spot(space.id, 'A1').hold_reference == second.id

    def test_custom_ttl(self, space, driver, now):
        hold = HoldService.place_hold(space.id, 'A1', driver=driver, ttl=timedelta(minutes=5), now=now)
        assert hold.expires_at == now + timedelta(minutes=5)

    def test_zero_ttl_is_rejected(self, space, driver, now):
        # When
        with pytest.raises(ValidationError):
            HoldService.place_hold(space.id, 'A1', driver=driver, ttl=timedelta(0), now=now)

        # Then
        assert not SpotHold.objects.exists()
        assert SpotLedger.get_spot(space.id, 'A1').is_available


@pytest.mark.django_db
class TestReleaseHold:

    def test_release_twice_is_a_no_op(self, space, driver, now):
        # Given
        hold = HoldService.place_hold(space.id, 'A1', driver=driver, now=now)

        # When
        HoldService.release_hold(hold.id, driver=driver)
        released = HoldService.release_hold(hold.id, driver=driver)

        # Then
        assert released.status == 'released'
        assert SpotLedger.get_spot(space.id, 'A1').is_available

    def test_only_owner_can_release(self, space, driver, another_driver, now):
        # Given
        hold = HoldService.place_hold(space.id, 'A1', driver=driver, now=now)

        # When / Then
        with pytest.raises(PermissionDenied):
            HoldService.release_hold(hold.id, driver=another_driver)
        assert SpotLedger.get_spot(space.id, 'A1').state == 'held'

    def test_unknown_hold(self, db):
        with pytest.raises(NotFound):
            HoldService.release_hold('not-a-uuid', session_key='x')

    def test_releasing_a_taken_over_hold_keeps_the_new_holder(self, space, driver, another_driver, now):
        # Given D1's hold lapsed and D2 took the spot
        stale = HoldService.place_hold(space.id, 'A1', driver=driver, now=now)
        later = now + timedelta(minutes=16)
        fresh = HoldService.place_hold(space.id, 'A1', driver=another_driver, now=later)

        # When
        HoldService.release_hold(stale.id, driver=driver)

        # Then
        assert SpotLedger.get_spot(space.id, 'A1').hold_reference == fresh.id

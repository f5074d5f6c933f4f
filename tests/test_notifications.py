from datetime import timedelta

from django.core import mail
import pytest

from bookings.services import BookingService, HoldService
from notifications.models import ChangeEvent, Notification
from notifications.services import NotificationService
from notifications.tasks import prune_change_events


@pytest.mark.django_db
class TestNotificationService:

    def test_notify_stores_and_emails(self, driver, django_capture_on_commit_callbacks):
        # When
        with django_capture_on_commit_callbacks(execute=True):
            NotificationService.notify(driver, 'spot_reserved', 'Spot Reserved', 'Spot A1 is yours for now.')

        # Then
        assert Notification.objects.filter(user=driver, type='spot_reserved').count() == 1
        assert len(mail.outbox) == 1
        assert mail.outbox[0].to == ['otieno@example.com']
        assert mail.outbox[0].subject == 'Spot Reserved'

    def test_unread_count_and_mark_all_read(self, driver):
        # Given
        for title in ('One', 'Two'):
            NotificationService.notify(driver, 'booking_created', title, 'message')

        # When
        before = NotificationService.unread_count(driver)
        marked = NotificationService.mark_all_read(driver)

        # Then
        assert before == 2
        assert marked == 2
        assert NotificationService.unread_count(driver) == 0


@pytest.mark.django_db
class TestNotificationEndpoints:

    def test_user_only_sees_own_notifications(self, driver_client, driver, host):
        # Given
        NotificationService.notify(driver, 'booking_created', 'Mine', 'message')
        NotificationService.notify(host, 'booking_created', 'Theirs', 'message')

        # When
        response = driver_client.get('/api/v1/notifications/')

        # Then
        assert [item['title'] for item in response.data['results']] == ['Mine']

    def test_mark_read(self, driver_client, driver):
        # Given
        notification = NotificationService.notify(driver, 'booking_created', 'Hello', 'message')

        # When
        response = driver_client.post(f'/api/v1/notifications/{notification.id}/mark_read/')

        # Then
        assert response.status_code == 200
        assert response.data['read'] is True
        assert driver_client.get('/api/v1/notifications/unread_count/').data == {'unread_count': 0}

    def test_mark_all_read(self, driver_client, driver):
        NotificationService.notify(driver, 'booking_created', 'Hello', 'message')
        response = driver_client.post('/api/v1/notifications/mark_all_read/')
        assert response.data == {'marked_read': 1}


@pytest.mark.django_db
class TestChangeStream:

    def test_cursor_returns_only_newer_events(self, api_client, space, driver, window):
        # Given
        first = api_client.get('/api/v1/changes/').data
        BookingService.create_booking(space.id, 'A1', driver, *window)

        # When
        update = api_client.get('/api/v1/changes/', {'after': first['cursor']}).data
        again = api_client.get('/api/v1/changes/', {'after': update['cursor']}).data

        # Then
        topics = [event['topic'] for event in update['events']]
        assert 'spot' in topics and 'booking' in topics
        assert update['cursor'] > first['cursor']
        assert again['events'] == []
        assert again['cursor'] == update['cursor']

    def test_stream_can_be_scoped_to_a_space(self, api_client, space, single_spot_space, driver):
        # Given
        HoldService.place_hold(space.id, 'A1', driver=driver)
        HoldService.place_hold(single_spot_space.id, 'A1', driver=driver)

        # When
        response = api_client.get('/api/v1/changes/', {'space': single_spot_space.id})

        # Then
        assert {event['parking_space'] for event in response.data['events']} == {single_spot_space.id}

    def test_event_carries_spot_state(self, api_client, space, driver, now):
        # When
        HoldService.place_hold(space.id, 'A2', driver=driver, ttl=timedelta(minutes=5), now=now)

        # Then
        event = ChangeEvent.objects.filter(topic='spot', spot_label='A2').last()
        assert event.payload['state'] == 'held'
        assert event.payload['held_until'] == (now + timedelta(minutes=5)).isoformat()

    def test_bad_cursor_is_rejected(self, api_client, db):
        assert api_client.get('/api/v1/changes/', {'after': 'yesterday'}).status_code == 400


@pytest.mark.django_db
class TestChangeEventRetention:

    def test_prune_drops_only_events_past_retention(self, space, driver, now, settings):
        # Given one event from two days ago and one from just now
        settings.CHANGE_EVENT_RETENTION_HOURS = 24
        HoldService.place_hold(space.id, 'A1', driver=driver)
        stale = ChangeEvent.objects.order_by('id').first()
        ChangeEvent.objects.filter(pk__lte=stale.pk).update(created_at=now - timedelta(hours=48))
        HoldService.place_hold(space.id, 'A2', driver=driver)
        remaining_before = ChangeEvent.objects.filter(pk__gt=stale.pk).count()

        # When
        deleted = prune_change_events.apply().get()

        # Then
        assert deleted == 1
        assert not ChangeEvent.objects.filter(pk=stale.pk).exists()
        assert ChangeEvent.objects.count() == remaining_before

    def test_stream_reports_oldest_retained_event(self, api_client, space, driver):
        # Given
        HoldService.place_hold(space.id, 'A1', driver=driver)
        first_id = ChangeEvent.objects.order_by('id').first().id

        # When
        response = api_client.get('/api/v1/changes/', {'after': first_id})

        # Then
        assert response.data['oldest'] == first_id

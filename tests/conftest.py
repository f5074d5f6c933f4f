from datetime import timedelta
from decimal import Decimal

from django.core.cache import cache
from django.utils import timezone
import pytest
from rest_framework.test import APIClient

from parking.models import ParkingSpace
from users.models import CustomUser


@pytest.fixture(autouse=True)
def clear_cache():
    """Sweep lock and M-Pesa token live in the cache"""
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def now():
    return timezone.now()


@pytest.fixture
def host(db):
    return CustomUser.objects.create_user(
        username='host_wanjiru',
        email='wanjiru@example.com',
        password='securepassword123',
        first_name='Wanjiru',
        last_name='Kamau',
        phone_number='+254711000001',
        user_type='owner',
    )


@pytest.fixture
def driver(db):
    return CustomUser.objects.create_user(
        username='driver_otieno',
        email='otieno@example.com',
        password='securepassword123',
        first_name='Otieno',
        last_name='Odhiambo',
        phone_number='+254722000002',
        user_type='driver',
    )


@pytest.fixture
def another_driver(db):
    return CustomUser.objects.create_user(
        username='driver_achieng',
        email='achieng@example.com',
        password='securepassword123',
        phone_number='+254733000003',
        user_type='driver',
    )


@pytest.fixture
def space(host):
    return ParkingSpace.objects.create_with_spots(
        host,
        ['A1', 'A2'],
        title='Westlands Secure Parking',
        address='Waiyaki Way',
        city='Nairobi',
        price_per_hour=Decimal('150.00'),
    )


@pytest.fixture
def single_spot_space(host):
    return ParkingSpace.objects.create_with_spots(
        host,
        ['A1'],
        title='Kilimani Driveway',
        address='Argwings Kodhek Road',
        city='Nairobi',
        price_per_hour=Decimal('100.00'),
    )


@pytest.fixture
def window(now):
    """A three hour booking window starting in an hour"""
    start = now + timedelta(hours=1)
    return start, start + timedelta(hours=3)


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def driver_client(driver):
    client = APIClient()
    client.force_authenticate(user=driver)
    return client


@pytest.fixture
def host_client(host):
    client = APIClient()
    client.force_authenticate(user=host)
    return client

from datetime import time, timedelta
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.utils import timezone
from rest_framework.test import APIClient

from portal.models import NotificationTemplate, Service, SlotSettings, TimeSlot

User = get_user_model()

PASSWORD = 'Sup3r#Secret!'


@pytest.fixture(autouse=True)
def _clear_cache():
    # rate-limit counters, throttles and cached config live in the cache
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def admin_user(db):
    return User.objects.create_user(
        username='officer@consulate.test', email='officer@consulate.test', password=PASSWORD,
        role='admin', first_name='Ada', last_name='Officer',
    )


@pytest.fixture
def super_admin(db):
    return User.objects.create_user(
        username='root@consulate.test', email='root@consulate.test', password=PASSWORD,
        role='super_admin', first_name='Sam', last_name='Root',
    )


@pytest.fixture
def applicant(db):
    return User.objects.create_user(
        username='citizen@example.com', email='citizen@example.com', password=PASSWORD,
        role='applicant', first_name='Ravi', last_name='Kumar',
    )


def client_for(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def admin_client(admin_user):
    return client_for(admin_user)


@pytest.fixture
def super_client(super_admin):
    return client_for(super_admin)


@pytest.fixture
def service(db):
    return Service.objects.create(
        service_id='passport-renewal', title='Passport Renewal', category='passport',
        processing_time='15-20 working days', fee='R2,500', fee_amount=Decimal('2500'),
        requirements=['Old passport'], max_daily=5,
    )


@pytest.fixture
def slots(db):
    SlotSettings.load()
    return [
        TimeSlot.objects.create(start_time=time(h, m), end_time=time(h, m + 30) if m == 0 else time(h + 1, 0))
        for h in (9, 10) for m in (0, 30)
    ]


@pytest.fixture
def submitted_template(db):
    return NotificationTemplate.objects.create(
        name='Application Submitted', type='email', category='Application Status Updates',
        subject='Application {{applicationId}} received',
        content='Dear {{applicantName}}, your application {{applicationId}} has been submitted.',
        variables=['applicantName', 'applicationId'],
    )


def next_weekday(min_days=2, start=None):
    day = (start or timezone.localdate()) + timedelta(days=min_days)
    while day.weekday() >= 5:
        day += timedelta(days=1)
    return day


@pytest.fixture
def booking_day():
    return next_weekday()

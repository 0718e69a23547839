from io import StringIO

import pytest
from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.core.management.base import CommandError

from portal.clients.php_api import ApplicationRecord, Pagination, PHPAPIError
from portal.management.commands import sync_backend_applications
from portal.models import Application, Banner, NotificationTemplate, Service, SlotSettings, TimeSlot

User = get_user_model()

pytestmark = pytest.mark.django_db


def test_seed_portal_is_idempotent():
    call_command('seed_portal', stdout=StringIO())
    counts = (Service.objects.count(), NotificationTemplate.objects.count(), Banner.objects.count(),
              TimeSlot.objects.count())
    assert counts[0] >= 4
    assert counts[3] == 14
    assert not TimeSlot.objects.filter(start_time='13:00').exists()
    assert SlotSettings.objects.count() == 1

    Service.objects.filter(service_id='visa-application').update(title='Changed')
    call_command('seed_portal', stdout=StringIO())
    assert (Service.objects.count(), NotificationTemplate.objects.count(), Banner.objects.count(),
            TimeSlot.objects.count()) == counts
    assert Service.objects.get(service_id='visa-application').title == 'Changed'

    call_command('seed_portal', '--reset', stdout=StringIO())
    assert Service.objects.get(service_id='visa-application').title == 'Visa Application'


def test_ensure_admin_users_resets_locked_account():
    out = StringIO()
    call_command('ensure_admin_users', '--password', 'N3w#Pass', stdout=out)
    officer = User.objects.get(username='officer@consulate.local')
    assert officer.role == 'admin'
    assert officer.check_password('N3w#Pass')

    officer.failed_attempts = 9
    officer.status = 'suspended'
    officer.save()
    call_command('ensure_admin_users', '--with-2fa', stdout=out)
    officer.refresh_from_db()
    assert (officer.failed_attempts, officer.status) == (0, 'active')
    assert officer.two_factor_enabled and officer.otp_secret
    assert 'otpauth://totp/' in out.getvalue()
    assert User.objects.get(username='superadmin@consulate.local').role == 'super_admin'


class FakeAdmin:
    def __init__(self, pages):
        self.pages = pages
        self.requested = []

    def get_applications(self, page=1, limit=10, status=None, service=None):
        self.requested.append(page)
        return self.pages[page - 1]


def _fake_client(monkeypatch, pages):
    admin = FakeAdmin(pages)

    class FakeClient:
        def __init__(self):
            self.admin = admin

        def login(self, *args):
            raise AssertionError('login not expected')

    monkeypatch.setattr(sync_backend_applications, 'PHPAPIClient', FakeClient)
    return admin


def _record(app_id, status, first='Ravi'):
    return ApplicationRecord(application_id=app_id, service_id='passport-renewal', status=status,
                             applicant_info={'firstName': first}, submitted_at='2030-03-01T10:00:00')


def test_sync_creates_and_updates(monkeypatch, service):
    existing = Application.objects.create(application_id='APP-2', service=service, status='submitted',
                                          applicant_info={'firstName': 'Ravi'},
                                          submitted_at='2030-03-01T10:00:00Z')
    admin = _fake_client(monkeypatch, [
        ([_record('APP-1', 'submitted'), _record('APP-2', 'completed')], Pagination(1, 2, 4, 2)),
        ([_record('APP-3', 'lost'), _record('APP-2', 'completed')], Pagination(2, 2, 4, 2)),
    ])
    out = StringIO()
    call_command('sync_backend_applications', stdout=out, stderr=StringIO())
    assert admin.requested == [1, 2]
    assert 'created=1 updated=1 skipped=2' in out.getvalue()

    created = Application.objects.get(application_id='APP-1')
    assert created.service == service
    assert created.timeline.get().updated_by == 'SYNC'
    existing.refresh_from_db()
    assert existing.status == 'completed'
    assert existing.timeline.filter(status='completed', updated_by='SYNC').exists()
    assert not Application.objects.filter(application_id='APP-3').exists()


def test_sync_backend_error(monkeypatch):
    admin = _fake_client(monkeypatch, [])

    def fail(**kwargs):
        raise PHPAPIError(0, 'NETWORK_ERROR', 'Could not reach backend')

    admin.get_applications = fail
    with pytest.raises(CommandError, match='NETWORK_ERROR'):
        call_command('sync_backend_applications', stdout=StringIO())

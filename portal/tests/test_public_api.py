from datetime import timedelta

import pytest
from django.core import mail
from django.utils import timezone

from portal.models import Application, Banner, NotificationTemplate, Service

pytestmark = pytest.mark.django_db

SUBMIT = '/api/applications/submit'


def payload(**overrides):
    data = {
        'serviceType': 'passport-renewal',
        'firstName': 'Ravi',
        'lastName': 'Kumar',
        'email': 'ravi@example.com',
        'phone': '+27 82 555 0101',
        'nationality': 'Indian',
    }
    data.update(overrides)
    return data


def test_list_services_returns_only_active(api_client, service):
    Service.objects.create(service_id='retired', title='Retired', is_active=False)
    r = api_client.get('/api/services')
    assert r.status_code == 200
    assert [s['serviceId'] for s in r.data['services']] == ['passport-renewal']
    assert r.data['services'][0]['feeAmount'] == 2500.0


def test_service_detail_and_404(api_client, service):
    assert api_client.get('/api/services/passport-renewal').data['service']['title'] == 'Passport Renewal'
    r = api_client.get('/api/services/missing')
    assert r.status_code == 404
    assert r.data['success'] is False


def test_banners_filtered_by_window_and_page(api_client):
    now = timezone.now()
    Banner.objects.create(title='Home only', target_pages=['home'], priority=2)
    Banner.objects.create(title='Everywhere', target_pages=[], priority=1)
    Banner.objects.create(title='Expired', end_date=now - timedelta(days=1))
    Banner.objects.create(title='Future', start_date=now + timedelta(days=1))
    Banner.objects.create(title='Off', is_active=False)
    r = api_client.get('/api/banners', {'page': 'home'})
    assert [b['title'] for b in r.data['banners']] == ['Everywhere', 'Home only']
    r = api_client.get('/api/banners', {'page': 'apply'})
    assert [b['title'] for b in r.data['banners']] == ['Everywhere']


def test_submit_application_creates_record_and_timeline(api_client, service, submitted_template):
    r = api_client.post(SUBMIT, payload(), format='json')
    assert r.status_code == 200
    assert r.data['success'] is True
    assert r.data['status'] == 'submitted'
    app = Application.objects.get(application_id=r.data['applicationId'])
    assert app.application_id.startswith('ICS')
    assert app.applicant_info['firstName'] == 'Ravi'
    assert app.applicant_info['preferredNotification'] == 'email'
    assert app.fee_amount == service.fee_amount
    assert app.timeline.count() == 1
    assert app.expected_completion > app.submitted_at
    assert len(mail.outbox) == 1
    assert app.application_id in mail.outbox[0].body
    assert NotificationTemplate.objects.get(pk=submitted_template.pk).usage_count == 1


def test_submit_strips_markup(api_client, service):
    r = api_client.post(SUBMIT, payload(firstName='<script>alert(1)</script>Ravi'), format='json')
    app = Application.objects.get(application_id=r.data['applicationId'])
    assert '<' not in app.applicant_info['firstName']


def test_submit_accepts_form_encoding(api_client, service):
    r = api_client.post(SUBMIT, payload())
    assert r.status_code == 200


@pytest.mark.parametrize('overrides,message', [
    ({'firstName': ''}, 'Missing required fields'),
    ({'email': 'not-an-email'}, 'Invalid email format'),
    ({'serviceType': 'nope'}, 'Unknown service type'),
])
def test_submit_validation(api_client, service, overrides, message):
    r = api_client.post(SUBMIT, payload(**overrides), format='json')
    assert r.status_code == 400
    assert r.data == {'success': False, 'error': message}
    assert not Application.objects.exists()


def test_submit_links_authenticated_user(service, applicant):
    from .conftest import client_for
    r = client_for(applicant).post(SUBMIT, payload(), format='json')
    assert Application.objects.get(application_id=r.data['applicationId']).user == applicant


def test_track_application(api_client, service):
    application_id = api_client.post(SUBMIT, payload(), format='json').data['applicationId']
    r = api_client.get(SUBMIT, {'id': application_id})
    assert r.status_code == 200
    assert r.data['application']['applicationId'] == application_id
    assert r.data['application']['timeline'][0]['status'] == 'submitted'


def test_track_requires_id_and_known_application(api_client):
    assert api_client.get(SUBMIT).status_code == 400
    assert api_client.get(SUBMIT, {'id': 'ICS000'}).status_code == 404


def test_healthz(api_client):
    r = api_client.get('/healthz')
    assert r.status_code == 200
    assert r.json() == {'ok': True, 'db': True}

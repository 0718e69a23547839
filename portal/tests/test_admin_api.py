from datetime import timedelta

import pytest
from django.contrib.auth import get_user_model
from django.core import mail
from django.utils import timezone

from portal.models import (
    Application, ApplicationEvent, AuditEvent, Banner, Deployment, Notification, NotificationTemplate, Service,
)
from portal.services import analytics, applications, dashboard

from .conftest import client_for

pytestmark = pytest.mark.django_db

User = get_user_model()


def make_app(service, status='submitted', first='Meera', email='meera@example.com', days_ago=0):
    return Application.objects.create(
        service=service, status=status, fee_amount=service.fee_amount,
        applicant_info={'firstName': first, 'lastName': 'Patel', 'email': email},
        submitted_at=timezone.now() - timedelta(days=days_ago),
    )


# ---------------------------------------------------------------------
# Access control
# ---------------------------------------------------------------------
@pytest.mark.parametrize('path', [
    '/api/admin/dashboard/stats',
    '/api/admin/applications',
    '/api/admin/users',
    '/api/admin/system/status',
    '/api/admin/time-slots',
])
def test_admin_endpoints_require_authentication(api_client, path):
    r = api_client.get(path)
    assert r.status_code == 401
    assert r.data['success'] is False


def test_applicants_are_forbidden(applicant):
    r = client_for(applicant).get('/api/admin/applications')
    assert r.status_code == 403
    assert r.data['error'] == 'Admin access required'


# ---------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------
def test_dashboard_stats_are_cached(admin_client, service):
    make_app(service)
    make_app(service, status='completed')
    stats = admin_client.get('/api/admin/dashboard/stats').data['stats']
    assert stats['totalApplications'] == 2
    assert stats['pendingApplications'] == 1
    assert stats['completedApplications'] == 1
    assert stats['totalRevenue'] == 5000.0
    make_app(service)
    assert admin_client.get('/api/admin/dashboard/stats').data['stats']['totalApplications'] == 2
    fresh = admin_client.get('/api/admin/dashboard/stats', {'refresh': 'true'}).data['stats']
    assert fresh['totalApplications'] == 3


def test_today_submissions_start_at_local_midnight(service, monkeypatch):
    local_midnight = timezone.localtime().replace(hour=0, minute=0, second=0, microsecond=0)
    monkeypatch.setattr(timezone, 'now', lambda: local_midnight + timedelta(hours=16, minutes=35))
    early = make_app(service)
    late_yesterday = make_app(service, email='late@example.com')
    Application.objects.filter(pk=early.pk).update(submitted_at=local_midnight + timedelta(minutes=30))
    Application.objects.filter(pk=late_yesterday.pk).update(submitted_at=local_midnight - timedelta(minutes=1))
    assert dashboard.compute_stats()['todaySubmissions'] == 1


def _completed_after(service, days):
    app = make_app(service, status='completed', days_ago=10)
    ApplicationEvent.objects.create(application=app, status='completed')
    app.refresh_from_db()
    ApplicationEvent.objects.filter(application=app).update(timestamp=app.submitted_at + timedelta(days=days))
    return app


def test_processing_time_uses_completion_event(admin_client, service):
    app = _completed_after(service, 4)
    # a later edit bumps last_updated but not the completion time
    app.processing_notes = 'Collected by courier'
    app.save()
    assert dashboard.compute_stats()['averageProcessingTime'] == '4.0 days'
    report = analytics.build_analytics('last30days')
    assert report['performance']['avgProcessingTime'] == 4.0


# ---------------------------------------------------------------------
# Applications
# ---------------------------------------------------------------------
def test_list_applications_with_filters_and_pagination(admin_client, service):
    for i in range(12):
        make_app(service, first=f'Person{i}', email=f'p{i}@example.com')
    make_app(service, status='rejected', first='Zara')
    r = admin_client.get('/api/admin/applications', {'status': 'submitted', 'page': 2, 'limit': 5})
    assert r.data['pagination'] == {'page': 2, 'limit': 5, 'total': 12, 'totalPages': 3}
    assert len(r.data['applications']) == 5
    r = admin_client.get('/api/admin/applications', {'status': 'all', 'search': 'zara'})
    assert [a['applicantInfo']['firstName'] for a in r.data['applications']] == ['Zara']


def test_update_application_status(admin_client, admin_user, service):
    app = make_app(service)
    r = admin_client.put('/api/admin/applications', {
        'applicationId': app.application_id, 'status': 'in-progress', 'notes': 'Documents verified',
    }, format='json')
    assert r.status_code == 200
    app.refresh_from_db()
    assert app.status == 'in-progress'
    assert app.processing_notes == 'Documents verified'
    event = app.timeline.last()
    assert event.status == 'in-progress'
    assert event.updated_by == admin_user.username
    assert AuditEvent.objects.filter(action='application_status', object_id=app.application_id).exists()


@pytest.mark.parametrize('data,code', [
    ({'status': 'completed'}, 400),
    ({'applicationId': 'ICS1', 'status': 'approved'}, 400),
    ({'applicationId': 'ICS-missing', 'status': 'completed'}, 404),
])
def test_update_application_errors(admin_client, data, code):
    assert admin_client.put('/api/admin/applications', data, format='json').status_code == code


def test_bulk_update_reports_per_application(admin_client, service):
    a, b = make_app(service), make_app(service)
    r = admin_client.post('/api/admin/applications/bulk-update', {
        'application_ids': [a.application_id, b.application_id, 'ICS-missing'],
        'action': 'ready-for-collection',
        'assignedOfficer': 'Desk 4',
    }, format='json')
    assert r.status_code == 200
    assert r.data['summary'] == {'total': 3, 'successful': 2, 'failed': 1}
    assert r.data['results'][0]['oldStatus'] == 'submitted'
    assert r.data['results'][2] == {'applicationId': 'ICS-missing', 'success': False, 'error': 'Application not found'}
    a.refresh_from_db()
    assert a.status == 'ready-for-collection' and a.assigned_officer == 'Desk 4'


def test_bulk_update_rolls_back_on_failure(service, monkeypatch):
    a, b = make_app(service), make_app(service)
    real_change = applications.change_status

    def flaky(app, status, **kwargs):
        if app.pk == b.pk:
            raise RuntimeError('database went away')
        return real_change(app, status, **kwargs)

    monkeypatch.setattr(applications, 'change_status', flaky)
    with pytest.raises(RuntimeError):
        applications.bulk_change_status([a.application_id, b.application_id], 'completed')
    a.refresh_from_db()
    assert a.status == 'submitted'
    assert not a.timeline.exists()


def test_bulk_update_validation(admin_client):
    assert admin_client.put('/api/admin/applications/bulk-update', {'status': 'completed'},
                            format='json').status_code == 400
    r = admin_client.put('/api/admin/applications/bulk-update', {'applicationIds': ['x'], 'status': 'done'},
                         format='json')
    assert r.data['error'] == 'Invalid status'


# ---------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------
def test_create_and_list_users(admin_client):
    r = admin_client.post('/api/admin/users', {
        'email': 'New.Officer@Consulate.test', 'firstName': 'New', 'lastName': 'Officer',
        'role': 'admin', 'password': 'x&y#z',
    }, format='json')
    assert r.status_code == 201
    created = User.objects.get(email='new.officer@consulate.test')
    assert created.check_password('x&y#z')
    r = admin_client.get('/api/admin/users', {'role': 'admin', 'search': 'new'})
    assert r.data['pagination']['totalUsers'] == 1
    assert r.data['users'][0]['firstName'] == 'New'


def test_create_user_errors(admin_client, applicant):
    assert admin_client.post('/api/admin/users', {'firstName': 'x'}, format='json').data['error'] == 'Email is required'
    r = admin_client.post('/api/admin/users', {'email': applicant.email}, format='json')
    assert r.data['error'] == 'A user with this email already exists'
    r = admin_client.post('/api/admin/users', {'email': 'a@b.co', 'role': 'emperor'}, format='json')
    assert r.data['error'] == 'Invalid role'


def test_role_alias_user_means_applicant(admin_client, applicant):
    r = admin_client.get('/api/admin/users', {'role': 'user'})
    assert [u['userId'] for u in r.data['users']] == [applicant.id]


def test_update_and_delete_user(admin_client, applicant):
    r = admin_client.put('/api/admin/users', {'userId': applicant.id, 'status': 'suspended', 'phone': '+2711'},
                         format='json')
    assert r.status_code == 200
    applicant.refresh_from_db()
    assert applicant.status == 'suspended' and not applicant.is_active
    assert admin_client.delete(f'/api/admin/users?userId={applicant.id}').status_code == 200
    assert not User.objects.filter(pk=applicant.id).exists()
    assert admin_client.delete('/api/admin/users?userId=99999').status_code == 404


def test_admin_cannot_delete_self(admin_client, admin_user):
    r = admin_client.delete(f'/api/admin/users?userId={admin_user.id}')
    assert r.status_code == 400
    assert User.objects.filter(pk=admin_user.id).exists()


def test_admin_cannot_promote_to_super_admin(admin_client, admin_user, applicant):
    r = admin_client.put('/api/admin/users', {'userId': admin_user.id, 'role': 'super_admin'}, format='json')
    assert r.status_code == 403
    admin_user.refresh_from_db()
    assert admin_user.role == 'admin'
    # the escalation attempt must not unlock super admin endpoints
    assert admin_client.post('/api/admin/system/config').status_code == 403

    r = admin_client.post('/api/admin/users', {'email': 'boss@example.com', 'role': 'super_admin'}, format='json')
    assert r.status_code == 403
    assert not User.objects.filter(email='boss@example.com').exists()

    r = admin_client.put('/api/admin/users/bulk', {
        'userIds': [applicant.id], 'action': 'update_role', 'data': {'role': 'super_admin'},
    }, format='json')
    assert r.data['results']['failed'] == 1
    applicant.refresh_from_db()
    assert applicant.role == 'applicant'


def test_admin_cannot_demote_super_admin(admin_client, super_admin):
    r = admin_client.put('/api/admin/users', {'userId': super_admin.id, 'role': 'admin'}, format='json')
    assert r.status_code == 403
    super_admin.refresh_from_db()
    assert super_admin.role == 'super_admin'


def test_super_admin_manages_super_admin_role(super_client, admin_user):
    r = super_client.put('/api/admin/users', {'userId': admin_user.id, 'role': 'super_admin'}, format='json')
    assert r.status_code == 200
    admin_user.refresh_from_db()
    assert admin_user.role == 'super_admin'
    r = super_client.put('/api/admin/users/bulk', {
        'userIds': [admin_user.id], 'action': 'update_role', 'data': {'role': 'admin'},
    }, format='json')
    assert r.data['results']['success'] == 1
    admin_user.refresh_from_db()
    assert admin_user.role == 'admin'


def test_bulk_user_actions(admin_client, admin_user, applicant):
    r = admin_client.put('/api/admin/users/bulk', {
        'userIds': [applicant.id, admin_user.id], 'action': 'deactivate',
    }, format='json')
    assert r.data['results']['success'] == 1
    assert r.data['results']['failed'] == 1
    admin_user.refresh_from_db()
    assert admin_user.is_active
    r = admin_client.put('/api/admin/users/bulk', {
        'userIds': [applicant.id], 'action': 'update_role', 'data': {'role': 'admin'},
    }, format='json')
    applicant.refresh_from_db()
    assert applicant.role == 'admin'
    assert admin_client.put('/api/admin/users/bulk', {'userIds': [1], 'action': 'explode'},
                            format='json').status_code == 400


def test_bulk_create_and_delete(admin_client):
    r = admin_client.post('/api/admin/users/bulk', {'users': [
        {'firstName': 'A', 'lastName': 'One', 'email': 'a1@example.com'},
        {'firstName': 'B', 'lastName': 'Two', 'email': 'b2@example.com'},
    ]}, format='json')
    assert r.status_code == 201
    ids = list(User.objects.filter(email__in=['a1@example.com', 'b2@example.com']).values_list('id', flat=True))
    assert len(ids) == 2
    r = admin_client.delete('/api/admin/users/bulk', {'userIds': ids}, format='json')
    assert r.data['results']['success'] == 2
    r = admin_client.post('/api/admin/users/bulk', {'users': [{'firstName': 'C', 'email': 'c@example.com'}]},
                          format='json')
    assert r.data['error'] == 'lastName is required for all users'


# ---------------------------------------------------------------------
# Services, banners, templates, notifications
# ---------------------------------------------------------------------
def test_service_crud(admin_client):
    r = admin_client.post('/api/admin/services', {
        'serviceId': 'visa-tourist', 'title': 'Tourist Visa', 'category': 'visa', 'feeAmount': '1800.00',
        'slotTimes': ['09:00', '10:00'],
    }, format='json')
    assert r.status_code == 201
    assert admin_client.post('/api/admin/services', {'serviceId': 'visa-tourist', 'title': 'Again'},
                             format='json').status_code == 400
    r = admin_client.put('/api/admin/services', {'serviceId': 'visa-tourist', 'isActive': False}, format='json')
    assert r.data['service']['isActive'] is False
    assert admin_client.get('/api/admin/services').data['services'] == []
    assert len(admin_client.get('/api/admin/services', {'includeInactive': 'true'}).data['services']) == 1
    assert admin_client.delete('/api/admin/services?serviceId=visa-tourist').status_code == 200
    assert not Service.objects.exists()


def test_banner_crud(admin_client):
    r = admin_client.post('/api/admin/content/banners', {
        'title': '<b>Closed</b> Friday', 'type': 'warning', 'priority': 2, 'targetPages': ['home'],
    }, format='json')
    assert r.status_code == 201
    banner_id = r.data['banner']['id']
    assert r.data['banner']['title'] == 'Closed Friday'
    r = admin_client.put('/api/admin/content/banners', {'id': banner_id, 'isActive': False}, format='json')
    assert r.data['banner']['isActive'] is False
    assert admin_client.get('/api/admin/content/banners', {'activeOnly': 'true'}).data['banners'] == []
    assert admin_client.delete(f'/api/admin/content/banners?id={banner_id}').status_code == 200
    assert not Banner.objects.exists()


def test_templates(admin_client, submitted_template):
    r = admin_client.post('/api/admin/notifications/templates', {
        'name': 'Ready', 'type': 'sms', 'content': 'Hi {{name}}, {{applicationId}} is ready',
    }, format='json')
    assert r.status_code == 201
    assert r.data['template']['variables'] == ['name', 'applicationId']
    assert admin_client.post('/api/admin/notifications/templates', {'name': 'x'},
                             format='json').status_code == 400
    r = admin_client.get('/api/admin/notifications/templates', {'type': 'email'})
    assert [t['name'] for t in r.data['templates']] == ['Application Submitted']
    r = admin_client.put('/api/admin/notifications/templates', {'id': 9999, 'name': 'x'}, format='json')
    assert r.status_code == 404


def test_send_email_notification_with_template(admin_client, submitted_template):
    r = admin_client.post('/api/admin/notifications/send', {
        'type': 'email', 'recipients': ['a@example.com', 'b@example.com'],
        'templateId': submitted_template.id,
        'data': {'applicantName': 'Asha', 'applicationId': 'ICS42'},
    }, format='json')
    assert r.status_code == 200
    assert r.data['summary'] == {'total': 2, 'sent': 2, 'queued': 0, 'failed': 0}
    assert len(mail.outbox) == 2
    assert mail.outbox[0].subject == 'Application ICS42 received'
    assert 'Dear Asha' in mail.outbox[0].body
    assert NotificationTemplate.objects.get(pk=submitted_template.pk).usage_count == 1


def test_send_sms_is_queued(admin_client):
    r = admin_client.post('/api/admin/notifications/send', {
        'type': 'sms', 'recipients': ['+27820000000'], 'content': 'Office closed today',
    }, format='json')
    assert r.data['summary']['queued'] == 1
    assert Notification.objects.get().status == 'queued'


@pytest.mark.parametrize('data,message', [
    ({'type': 'email', 'recipients': []}, 'Type, recipients, and content are required'),
    ({'type': 'fax', 'recipients': ['x'], 'content': 'hi'}, 'Invalid notification type'),
    ({'type': 'email', 'recipients': ['not-mail'], 'content': 'hi'}, 'Invalid email recipients'),
])
def test_send_notification_validation(admin_client, data, message):
    r = admin_client.post('/api/admin/notifications/send', data, format='json')
    assert r.status_code == 400
    assert r.data['error'] == message


# ---------------------------------------------------------------------
# System
# ---------------------------------------------------------------------
def test_config_read_by_admin_written_by_super_admin(admin_client, super_client):
    config = admin_client.get('/api/admin/system/config').data['config']
    assert config['security']['rateLimiting']['maxRequests'] == 100
    assert admin_client.put('/api/admin/system/config', {'general': {'siteName': 'X'}},
                            format='json').status_code == 403

    r = super_client.put('/api/admin/system/config', {
        'general': {'siteName': 'Consulate Portal'}, 'bogus': {'a': 1},
    }, format='json')
    assert r.status_code == 200
    assert r.data['config']['general']['siteName'] == 'Consulate Portal'
    assert r.data['config']['general']['currency'] == 'ZAR'
    assert 'bogus' not in r.data['config']
    assert admin_client.get('/api/admin/system/config').data['config']['general']['siteName'] == 'Consulate Portal'

    r = super_client.post('/api/admin/system/config')
    assert r.data['config']['general']['siteName'] == 'Indian Consular Services'


def test_system_status(admin_client):
    status = admin_client.get('/api/admin/system/status').data['status']
    assert status['database']['status'] == 'healthy'
    assert {'cpu', 'memory', 'disk', 'uptime'} <= set(status['server'])


def test_alerts(admin_client, admin_user, service):
    make_app(service, days_ago=10)
    ids = {a['id'] for a in admin_client.get('/api/admin/system/alerts').data['alerts']}
    assert 'old-pending-apps' in ids
    assert 'maintenance-due' in ids
    assert 'high-volume' not in ids


def test_analytics_logs_view(admin_client, service):
    make_app(service)
    make_app(service, status='completed')
    r = admin_client.get('/api/admin/analytics', {'dateRange': 'last30days'})
    assert r.status_code == 200
    assert r.data['analytics']['applications']['submitted'] == 2
    assert AuditEvent.objects.filter(action='VIEW_ANALYTICS').exists()


def test_deploy_flow(admin_client, settings):
    r = admin_client.get('/api/admin/deploy')
    assert r.data['currentVersion'] == settings.PORTAL_VERSION
    assert admin_client.post('/api/admin/deploy', {}, format='json').status_code == 400
    r = admin_client.post('/api/admin/deploy', {'version': 'v2.2.0', 'environment': 'staging'}, format='json')
    assert r.status_code == 202
    deployment_id = r.data['deploymentId']
    assert admin_client.get('/api/admin/deploy').data['status'] == 'deploying'
    r = admin_client.put('/api/admin/deploy', {'deploymentId': deployment_id, 'status': 'success'}, format='json')
    assert r.status_code == 200
    r = admin_client.get('/api/admin/deploy')
    assert r.data['currentVersion'] == 'v2.2.0'
    assert Deployment.objects.get(pk=deployment_id).status == 'success'

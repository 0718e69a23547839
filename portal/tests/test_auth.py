import pytest
from django.conf import settings
from rest_framework.test import APIClient

from portal.authentication import AUTH_COOKIE, SESSION_COOKIE
from portal.models import AdminSession, AuditEvent
from portal.services import otp

from .conftest import PASSWORD

pytestmark = pytest.mark.django_db

LOGIN = '/api/auth/login'


def login(client, username, password=PASSWORD, **extra):
    return client.post(LOGIN, {'username': username, 'password': password, **extra}, format='json')


def test_admin_login_issues_tokens_session_and_cookies(api_client, admin_user):
    r = login(api_client, admin_user.username)
    assert r.status_code == 200
    assert r.data['success'] is True
    assert r.data['user']['userId'] == admin_user.id
    assert r.data['user']['role'] == 'admin'
    assert r.data['user']['profile']['firstName'] == 'Ada'
    assert r.data['token'] and r.data['refreshToken']
    assert AdminSession.objects.filter(session_id=r.data['sessionId'], user=admin_user).exists()
    assert r.cookies[AUTH_COOKIE]['httponly']
    assert r.cookies[SESSION_COOKIE].value == r.data['sessionId']
    admin_user.refresh_from_db()
    assert admin_user.last_login is not None
    assert AuditEvent.objects.filter(action='LOGIN_SUCCESS', user=admin_user).exists()


def test_login_by_email_is_case_insensitive(api_client, admin_user):
    r = login(api_client, 'OFFICER@consulate.test')
    assert r.status_code == 200


def test_token_grants_access_to_admin_api(api_client, admin_user):
    token = login(api_client, admin_user.username).data['token']
    client = APIClient()
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')
    assert client.get('/api/admin/dashboard/stats').status_code == 200


def test_auth_cookie_is_accepted_without_header(api_client, admin_user):
    login(api_client, admin_user.username)
    # the test client keeps cookies set by the login response
    r = api_client.get('/api/admin/dashboard/stats')
    assert r.status_code == 200


def test_missing_credentials(api_client):
    r = api_client.post(LOGIN, {'username': 'someone'}, format='json')
    assert r.status_code == 400
    assert r.data == {'success': False, 'error': 'Username and password are required'}


def test_sql_injection_is_rejected(api_client, admin_user):
    r = login(api_client, "admin' OR '1'='1")
    assert r.status_code == 400
    assert r.data['error'] == 'Invalid input detected'
    assert AuditEvent.objects.filter(action='LOGIN_SQL_INJECTION_ATTEMPT', severity='critical').exists()


def test_password_with_hash_and_ampersand_is_not_mangled(api_client, db):
    from django.contrib.auth import get_user_model
    get_user_model().objects.create_user(username='amp@consulate.test', email='amp@consulate.test',
                                         password='a&b#c<d>', role='admin')
    r = login(api_client, 'amp@consulate.test', 'a&b#c<d>')
    assert r.status_code == 200


def test_unknown_user_and_applicant_get_invalid_credentials(api_client, applicant):
    assert login(api_client, 'nobody@consulate.test').status_code == 401
    r = login(api_client, applicant.username)
    assert r.status_code == 401
    assert r.data['error'] == 'Invalid credentials'


def test_wrong_password_increments_failed_attempts(api_client, admin_user):
    r = login(api_client, admin_user.username, 'wrong-password')
    assert r.status_code == 401
    admin_user.refresh_from_db()
    assert admin_user.failed_attempts == 1


def test_locked_account_returns_423(api_client, admin_user):
    admin_user.failed_attempts = settings.ACCOUNT_LOCK_THRESHOLD
    admin_user.save()
    r = login(api_client, admin_user.username)
    assert r.status_code == 423
    assert 'locked' in r.data['error']


def test_successful_login_resets_failed_attempts(api_client, admin_user):
    admin_user.failed_attempts = 2
    admin_user.save()
    assert login(api_client, admin_user.username).status_code == 200
    admin_user.refresh_from_db()
    assert admin_user.failed_attempts == 0


def test_ip_is_rate_limited_after_repeated_failures(api_client, admin_user):
    for _ in range(settings.LOGIN_RATE_LIMIT):
        assert login(api_client, admin_user.username, 'nope').status_code == 401
    r = login(api_client, admin_user.username)
    assert r.status_code == 429
    assert r.data['code'] == 'RATE_LIMITED'


def test_two_factor_flow(api_client, admin_user):
    admin_user.two_factor_enabled = True
    admin_user.otp_secret = otp.generate_secret()
    admin_user.save()

    r = login(api_client, admin_user.username)
    assert r.status_code == 200
    assert r.data['requiresTwoFactor'] is True
    assert 'token' not in r.data

    current = otp.totp(admin_user.otp_secret)
    r = login(api_client, admin_user.username, otp='000000' if current != '000000' else '111111')
    assert r.status_code == 401
    assert r.data['error'] == 'Invalid two-factor authentication code'

    r = login(api_client, admin_user.username, otp=otp.totp(admin_user.otp_secret))
    assert r.status_code == 200
    assert r.data['success'] is True


def test_logout_revokes_session_and_clears_cookies(api_client, admin_user):
    session_id = login(api_client, admin_user.username).data['sessionId']
    r = api_client.delete(LOGIN)
    assert r.status_code == 200
    assert r.data['success'] is True
    assert AdminSession.objects.get(session_id=session_id).revoked
    assert r.cookies[AUTH_COOKIE].value == ''


def test_cookie_token_refused_once_session_is_revoked(api_client, admin_user):
    data = login(api_client, admin_user.username).data
    api_client.delete(LOGIN)
    replay = APIClient()
    replay.cookies[AUTH_COOKIE] = data['token']
    replay.cookies[SESSION_COOKIE] = data['sessionId']
    r = replay.get('/api/admin/dashboard/stats')
    assert r.status_code == 401
    assert r.data['error'] == 'Session expired, please log in again'


def test_refresh_returns_new_access_token(api_client, admin_user):
    refresh = login(api_client, admin_user.username).data['refreshToken']
    r = APIClient().post('/api/auth/refresh', {'refresh': refresh}, format='json')
    assert r.status_code == 200
    assert r.data['success'] is True and r.data['token']


def test_refresh_with_garbage_token(api_client):
    r = api_client.post('/api/auth/refresh', {'refresh': 'not-a-token'}, format='json')
    assert r.status_code == 401
    assert r.data['success'] is False
    assert r.data['code'] == 'token_not_valid'


def test_jwt_logout_blacklists_refresh_token(api_client, admin_user):
    data = login(api_client, admin_user.username).data
    client = APIClient()
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {data['token']}")
    r = client.post('/api/auth/logout', {'refresh': data['refreshToken']}, format='json')
    assert r.status_code == 200
    assert r.data['blacklisted'] == 1
    again = APIClient().post('/api/auth/refresh', {'refresh': data['refreshToken']}, format='json')
    assert again.status_code == 401

"""
Back office authentication endpoints.

``POST /api/auth/login`` performs the full admin login: per-IP attempt
limiting, account lockout, optional TOTP second factor, server-side
session creation and JWT issue.  ``DELETE`` on the same path logs the
browser out.  Refresh and logout of JWT pairs live alongside.
"""
from __future__ import annotations

import logging

from django.conf import settings
from django.contrib.auth import get_user_model
from django.contrib.auth.models import update_last_login
from django.db.models import Q
from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.exceptions import AuthenticationFailed
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.serializers import TokenRefreshSerializer
from rest_framework_simplejwt.token_blacklist.models import BlacklistedToken, OutstandingToken
from rest_framework_simplejwt.tokens import RefreshToken

from .authentication import AUTH_COOKIE, SESSION_COOKIE
from .permissions import ADMIN_ROLES
from .serializers.auth import LoginSerializer, RefreshSerializer
from .services import otp as totp
from .services.ratelimit import RateLimitManager
from .services.security import InputValidator, SecurityUtils, log_security_event
from .services.sessions import create_session, destroy_session

logger = logging.getLogger(__name__)

User = get_user_model()


def _set_auth_cookies(response: Response, token: str, session_id: str) -> None:
    for name, value in ((AUTH_COOKIE, token), (SESSION_COOKIE, session_id)):
        response.set_cookie(
            name, value,
            max_age=settings.SESSION_TTL_SECONDS,
            httponly=True,
            secure=settings.ENV == 'prod',
            samesite='Strict',
            path='/',
        )


def _clear_auth_cookies(response: Response) -> None:
    response.delete_cookie(AUTH_COOKIE, path='/', samesite='Strict')
    response.delete_cookie(SESSION_COOKIE, path='/', samesite='Strict')


def _find_admin(username: str):
    user = User.objects.filter(Q(username=username) | Q(email__iexact=username)).first()
    if user is None or not user.is_active or user.status != 'active' or user.role not in ADMIN_ROLES:
        return None
    return user


@api_view(['POST', 'DELETE'])
@authentication_classes([])
@permission_classes([AllowAny])
def login_view(request):
    if request.method == 'DELETE':
        return _logout_browser(request)

    ip = SecurityUtils.client_ip(request)
    ua = SecurityUtils.user_agent(request)
    attempts_key = f"login:{ip}"

    if RateLimitManager.is_rate_limited(attempts_key, settings.LOGIN_RATE_LIMIT, settings.LOGIN_RATE_WINDOW):
        log_security_event('LOGIN_RATE_LIMITED', {'userAgent': ua}, 'high', ip)
        minutes = settings.LOGIN_RATE_WINDOW // 60
        return Response({
            'success': False,
            'error': f'Too many login attempts. Please try again in {minutes} minutes.',
            'code': 'RATE_LIMITED',
        }, status=429)

    s = LoginSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    username = InputValidator.sanitize_input(s.validated_data['username'])
    password = s.validated_data['password']
    code = InputValidator.sanitize_input(s.validated_data['otp'])

    if not username or not password:
        log_security_event('LOGIN_MISSING_CREDENTIALS', {'userAgent': ua, 'username': username or 'missing'}, 'medium', ip)
        return Response({'success': False, 'error': 'Username and password are required'}, status=400)

    if InputValidator.contains_sql_injection(username) or InputValidator.contains_sql_injection(password):
        log_security_event('LOGIN_SQL_INJECTION_ATTEMPT', {'userAgent': ua, 'username': username}, 'critical', ip)
        RateLimitManager.add_failed_attempt(attempts_key, settings.LOGIN_RATE_WINDOW)
        return Response({'success': False, 'error': 'Invalid input detected'}, status=400)

    user = _find_admin(username)
    if user is None:
        log_security_event('LOGIN_USER_NOT_FOUND', {'userAgent': ua, 'username': username}, 'medium', ip)
        RateLimitManager.add_failed_attempt(attempts_key, settings.LOGIN_RATE_WINDOW)
        return Response({'success': False, 'error': 'Invalid credentials'}, status=401)

    if user.failed_attempts >= settings.ACCOUNT_LOCK_THRESHOLD:
        log_security_event('LOGIN_ACCOUNT_LOCKED', {'userAgent': ua, 'userId': user.id}, 'high', ip, user=user)
        return Response({
            'success': False,
            'error': 'Account temporarily locked due to multiple failed attempts',
        }, status=423)

    if not user.check_password(password):
        user.failed_attempts += 1
        user.save(update_fields=['failed_attempts'])
        log_security_event('LOGIN_INVALID_PASSWORD', {
            'userAgent': ua, 'userId': user.id, 'failedAttempts': user.failed_attempts,
        }, 'medium', ip, user=user)
        RateLimitManager.add_failed_attempt(attempts_key, settings.LOGIN_RATE_WINDOW)
        return Response({'success': False, 'error': 'Invalid credentials'}, status=401)

    if user.two_factor_enabled:
        if not code or len(code) != totp.DIGITS:
            log_security_event('LOGIN_2FA_REQUIRED', {'userAgent': ua, 'userId': user.id}, 'low', ip, user=user)
            return Response({
                'requiresTwoFactor': True,
                'message': 'Two-factor authentication code required',
            }, status=200)
        if not totp.verify(user.otp_secret, code):
            log_security_event('LOGIN_INVALID_2FA', {'userAgent': ua, 'userId': user.id}, 'medium', ip, user=user)
            RateLimitManager.add_failed_attempt(attempts_key, settings.LOGIN_RATE_WINDOW)
            return Response({'success': False, 'error': 'Invalid two-factor authentication code'}, status=401)

    user.failed_attempts = 0
    user.save(update_fields=['failed_attempts'])
    update_last_login(None, user)
    session = create_session(user, ip, ua)
    refresh = RefreshToken.for_user(user)
    refresh['sid'] = session.session_id[:8]
    access = str(refresh.access_token)

    log_security_event('LOGIN_SUCCESS', {
        'userAgent': ua, 'userId': user.id, 'sessionId': session.session_id[:8] + '...',
    }, 'low', ip, user=user)
    RateLimitManager.reset_attempts(attempts_key)

    response = Response({
        'success': True,
        'user': {
            'userId': user.id,
            'email': user.email,
            'role': user.role,
            'profile': {
                'firstName': user.first_name,
                'lastName': user.last_name,
                **(user.profile or {}),
            },
        },
        'token': access,
        'refreshToken': str(refresh),
        'sessionId': session.session_id,
    })
    _set_auth_cookies(response, access, session.session_id)
    return response

# DRF ScopedRateThrottle uses throttle_scope on the view function
login_view.throttle_scope = 'login'


def _logout_browser(request):
    ip = SecurityUtils.client_ip(request)
    session_id = request.COOKIES.get(SESSION_COOKIE)
    if session_id and destroy_session(session_id):
        log_security_event('LOGOUT_SUCCESS', {
            'userAgent': SecurityUtils.user_agent(request), 'sessionId': session_id[:8] + '...',
        }, 'low', ip)
    response = Response({'success': True, 'message': 'Logged out successfully'})
    _clear_auth_cookies(response)
    return response


def _refresh_refused(message: str) -> Response:
    # no authenticator runs on this view, so the 401 is returned directly
    return Response({'success': False, 'error': message, 'code': 'token_not_valid'}, status=401)


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def jwt_refresh_view(request):
    """Return a new access token from refresh token."""
    s = RefreshSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    inner = TokenRefreshSerializer(data={'refresh': s.validated_data['refresh']})
    try:
        inner.is_valid(raise_exception=True)
    except TokenError as e:
        return _refresh_refused(str(e.args[0]))
    except AuthenticationFailed as e:
        return _refresh_refused(str(e.detail))
    data = {'success': True, 'token': inner.validated_data['access']}
    if 'refresh' in inner.validated_data:
        data['refreshToken'] = inner.validated_data['refresh']
    return Response(data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def jwt_logout_view(request):
    """Blacklist current user's refresh tokens (all or a given one)."""
    refresh = request.data.get('refresh')
    count = 0
    if refresh:
        try:
            RefreshToken(refresh).blacklist()
            count = 1
        except TokenError:
            return Response({'success': False, 'error': 'Invalid refresh token'}, status=400)
    else:
        for token in OutstandingToken.objects.filter(user=request.user):
            _, created = BlacklistedToken.objects.get_or_create(token=token)
            count += int(created)
    destroy_session(request.COOKIES.get(SESSION_COOKIE))
    logger.info("User %s blacklisted %d refresh token(s)", request.user.pk, count)
    response = Response({'success': True, 'blacklisted': count})
    _clear_auth_cookies(response)
    return response

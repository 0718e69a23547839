"""
Bearer token authentication for the portal API.

Tokens are simplejwt access tokens.  Browsers that logged in through the
back office carry the token in the HTTP-only ``auth-token`` cookie
instead of a header; such a request also needs a live ``session-id``
cookie, so logging out revokes the browser even while its JWT is valid.
"""
from __future__ import annotations

from rest_framework.exceptions import AuthenticationFailed
from rest_framework_simplejwt.authentication import JWTAuthentication

AUTH_COOKIE = 'auth-token'
SESSION_COOKIE = 'session-id'


class BearerAuthentication(JWTAuthentication):
    """JWT authentication reading the header first, then the cookie."""

    def authenticate(self, request):
        header = self.get_header(request)
        if header is not None:
            raw_token = self.get_raw_token(header)
            if raw_token is None:
                return None
            validated_token = self.get_validated_token(raw_token)
            return self.get_user(validated_token), validated_token

        cookie = request.COOKIES.get(AUTH_COOKIE)
        if not cookie:
            return None
        validated_token = self.get_validated_token(cookie.encode())
        user = self.get_user(validated_token)
        self._check_session(request, user)
        return user, validated_token

    @staticmethod
    def _check_session(request, user) -> None:
        from .services.sessions import get_active_session, touch_session

        session = get_active_session(request.COOKIES.get(SESSION_COOKIE))
        if session is None or session.user_id != user.pk:
            raise AuthenticationFailed('Session expired, please log in again', code='session_expired')
        touch_session(session)

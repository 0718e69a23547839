"""
Server-side admin sessions.

A session row is created for each successful back office login and is
referenced by the ``session-id`` cookie.  Revoking the row is how logout
invalidates a browser even while its JWT is still unexpired.
"""
from __future__ import annotations

from datetime import timedelta

from django.conf import settings
from django.utils import timezone

from portal.models import AdminSession

from .audit import clean_ip
from .security import SecurityUtils


def create_session(user, ip: str | None, user_agent: str = '') -> AdminSession:
    return AdminSession.objects.create(
        session_id=SecurityUtils.generate_secure_token(64),
        user=user,
        ip=clean_ip(ip),
        user_agent=(user_agent or '')[:512],
        expires_at=timezone.now() + timedelta(seconds=settings.SESSION_TTL_SECONDS),
    )


def get_active_session(session_id: str | None) -> AdminSession | None:
    if not session_id:
        return None
    return (
        AdminSession.objects.select_related('user')
        .filter(session_id=session_id, revoked=False, expires_at__gt=timezone.now())
        .first()
    )


def touch_session(session: AdminSession) -> None:
    session.save(update_fields=['last_seen'])


def destroy_session(session_id: str | None) -> bool:
    if not session_id:
        return False
    return AdminSession.objects.filter(session_id=session_id, revoked=False).update(revoked=True) > 0


from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from django.contrib.auth import get_user_model
from django.db.models import Q
from django.utils import timezone

from portal.models import Application
from portal.permissions import ADMIN_ROLES

from . import system_config

User = get_user_model()

STALE_DAYS = 7
HIGH_VOLUME = 50
INACTIVE_ADMIN_DAYS = 30
MAINTENANCE_DAYS = 30


def _alert(alert_id: str, kind: str, message: str, now: datetime) -> Dict[str, Any]:
    return {'id': alert_id, 'type': kind, 'message': message, 'timestamp': now.isoformat()}


def _last_maintenance() -> Optional[date]:
    raw = system_config.get_section('general').get('lastMaintenance')
    try:
        return datetime.strptime(str(raw), '%Y-%m-%d').date()
    except (TypeError, ValueError):
        return None


def collect(now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    now = now or timezone.now()
    alerts: List[Dict[str, Any]] = []

    stale = Application.objects.filter(
        status=Application.STATUS_SUBMITTED, submitted_at__lt=now - timedelta(days=STALE_DAYS)
    ).count()
    if stale:
        alerts.append(_alert('old-pending-apps', 'warning',
                             f"{stale} applications have been pending for more than {STALE_DAYS} days", now))

    midnight = timezone.localtime(now).replace(hour=0, minute=0, second=0, microsecond=0)
    today = Application.objects.filter(submitted_at__gte=midnight).count()
    if today > HIGH_VOLUME:
        alerts.append(_alert('high-volume', 'info',
                             f"High application volume today: {today} applications submitted", now))

    inactive = User.objects.filter(role__in=ADMIN_ROLES, is_active=True).filter(
        Q(last_login__lt=now - timedelta(days=INACTIVE_ADMIN_DAYS))
        | Q(last_login__isnull=True, date_joined__lt=now - timedelta(days=INACTIVE_ADMIN_DAYS))
    ).count()
    if inactive:
        alerts.append(_alert('inactive-admins', 'warning',
                             f"{inactive} admin users haven't logged in for {INACTIVE_ADMIN_DAYS}+ days", now))

    last = _last_maintenance()
    if last is not None:
        days = (timezone.localdate(now) - last).days
        if days > MAINTENANCE_DAYS:
            alerts.append(_alert('maintenance-due', 'info',
                                 f"System maintenance is due ({days} days since last maintenance)", now))
    return alerts

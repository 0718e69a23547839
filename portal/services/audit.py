import ipaddress
from typing import Optional, Any, Dict

from django.contrib.auth import get_user_model

from portal.models import AuditEvent

User = get_user_model()


def clean_ip(ip: Optional[str]) -> Optional[str]:
    if not ip:
        return None
    try:
        ipaddress.ip_address(ip)
    except ValueError:
        return None
    return ip


def log_action(*, user: Optional[User], action: str, object_type: Optional[str] = None,
               object_id: Optional[Any] = None, detail: Optional[Dict[str, Any]] = None,
               ip: Optional[str] = None, severity: str = 'low') -> AuditEvent:
    return AuditEvent.objects.create(
        user=user if isinstance(user, User) and getattr(user, 'pk', None) else None,
        action=action,
        object_type=object_type,
        object_id=str(object_id) if object_id is not None else None,
        detail=detail or {},
        ip=clean_ip(ip),
        severity=severity,
    )

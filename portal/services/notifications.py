"""
Notification rendering and delivery.

Email goes through Django's mail framework so the configured
``EMAIL_BACKEND`` decides the transport.  SMS, WhatsApp and push have no
gateway in this deployment; those messages are stored as ``queued`` for
an external dispatcher to pick up.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from django.conf import settings
from django.core.mail import send_mail
from django.db.models import F

from portal.models import Notification, NotificationTemplate, generate_notification_id

logger = logging.getLogger(__name__)

CHANNELS = ('email', 'sms', 'whatsapp', 'push')
_PLACEHOLDER = re.compile(r'\{\{\s*(\w+)\s*\}\}')


def render(text: str, data: Optional[Dict[str, Any]]) -> str:
    """Replace ``{{name}}`` placeholders; unknown names are left untouched."""
    data = data or {}

    def _sub(match):
        key = match.group(1)
        return str(data[key]) if key in data else match.group(0)

    return _PLACEHOLDER.sub(_sub, text or '')


def extract_variables(text: str) -> List[str]:
    seen: List[str] = []
    for name in _PLACEHOLDER.findall(text or ''):
        if name not in seen:
            seen.append(name)
    return seen


@dataclass
class DispatchResult:
    notification_id: str
    channel: str
    results: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def summary(self) -> Dict[str, int]:
        sent = sum(1 for r in self.results if r['status'] == 'sent')
        queued = sum(1 for r in self.results if r['status'] == 'queued')
        failed = sum(1 for r in self.results if r['status'] == 'failed')
        return {'total': len(self.results), 'sent': sent, 'queued': queued, 'failed': failed}


def _recipient_suffix(recipient: str) -> str:
    return re.sub(r'[^a-zA-Z0-9]', '', recipient)


def dispatch(*, channel: str, recipients: Iterable[str], content: str, subject: str = '',
             template: Optional[NotificationTemplate] = None, data: Optional[Dict[str, Any]] = None,
             sent_by=None) -> DispatchResult:
    if channel not in CHANNELS:
        raise ValueError('Invalid notification type')
    body = render(content, data)
    title = render(subject, data)
    result = DispatchResult(notification_id=generate_notification_id(), channel=channel)

    for recipient in recipients:
        recipient = str(recipient).strip()
        status, error = 'queued', ''
        if channel == 'email':
            try:
                send_mail(title or 'Consular Services', body, settings.DEFAULT_FROM_EMAIL, [recipient])
                status = 'sent'
            except Exception as exc:
                logger.warning("Email to %s failed: %s", recipient, exc)
                status, error = 'failed', str(exc)[:255]
        row = Notification.objects.create(
            notification_id=result.notification_id,
            channel=channel,
            recipient=recipient,
            subject=title,
            content=body,
            template=template,
            status=status,
            error=error,
            sent_by=sent_by if getattr(sent_by, 'pk', None) else None,
        )
        result.results.append({
            'recipient': recipient,
            'status': status,
            'sentAt': row.created_at.isoformat(),
            'notificationId': f"{result.notification_id}_{_recipient_suffix(recipient)}",
            **({'error': error} if error else {}),
        })

    if template is not None:
        NotificationTemplate.objects.filter(pk=template.pk).update(usage_count=F('usage_count') + 1)
    logger.info("Notification %s via %s: %s", result.notification_id, channel, result.summary)
    return result


def send_template(name: str, recipient: str, data: Dict[str, Any]) -> Optional[DispatchResult]:
    """Send the active template called ``name`` to one recipient, if it exists."""
    template = NotificationTemplate.objects.filter(name=name, is_active=True).first()
    if template is None:
        logger.debug("No active template named %r", name)
        return None
    return dispatch(
        channel=template.type,
        recipients=[recipient],
        content=template.content,
        subject=template.subject,
        template=template,
        data=data,
    )

"""
Back office analytics over a rolling date range.

Ranges are ``today``, ``yesterday``, ``last7days``, ``last30days`` and
``last90days``; anything else falls back to ``last7days``.  Trends
compare the range with the equally long period right before it.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

from django.db.models import Count, Sum
from django.db.models.functions import ExtractHour
from django.utils import timezone

from portal.models import Application, Notification

from .applications import processing_days

DATE_RANGES = ('today', 'yesterday', 'last7days', 'last30days', 'last90days')


def resolve_range(name: str, now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    now = now or timezone.now()
    midnight = timezone.localtime(now).replace(hour=0, minute=0, second=0, microsecond=0)
    if name == 'today':
        return midnight, now
    if name == 'yesterday':
        return midnight - timedelta(days=1), midnight
    days = {'last30days': 30, 'last90days': 90}.get(name, 7)
    return now - timedelta(days=days), now


def _trend(current: int, previous: int) -> float:
    if previous <= 0:
        return 0.0
    return round((current - previous) / previous * 100, 1)


def _service_label(service_id: str) -> str:
    return service_id.replace('-', ' ', 1).title()


def build_analytics(date_range: str = 'last7days', service_type: str = 'all',
                    now: Optional[datetime] = None) -> Dict[str, Any]:
    start, end = resolve_range(date_range, now)
    base = Application.objects.all()
    if service_type and service_type != 'all':
        base = base.filter(service_id=service_type)
    current = base.filter(submitted_at__gte=start, submitted_at__lte=end)
    previous = base.filter(submitted_at__gte=start - (end - start), submitted_at__lt=start)

    total = current.count()
    trend = _trend(total, previous.count())
    processed = current.filter(status__in=[Application.STATUS_IN_PROGRESS, Application.STATUS_READY]).count()
    completed_qs = current.filter(status=Application.STATUS_COMPLETED)
    rejected = current.filter(status=Application.STATUS_REJECTED).count()

    services = {}
    for row in current.values('service_id').annotate(count=Count('id'), revenue=Sum('fee_amount')).order_by('-count'):
        if not row['service_id']:
            continue
        services[row['service_id']] = {
            'name': _service_label(row['service_id']),
            'count': row['count'],
            'revenue': float(row['revenue'] or 0),
        }

    time_slots = {str(hour): 0 for hour in range(9, 18)}
    for row in current.annotate(hour=ExtractHour('submitted_at')).values('hour').annotate(count=Count('id')):
        if row['hour'] is not None and 9 <= row['hour'] <= 17:
            time_slots[str(row['hour'])] = row['count']

    durations = processing_days(completed_qs)
    avg_processing = round(sum(durations) / len(durations), 2) if durations else 0

    notes = Notification.objects.filter(created_at__gte=start, created_at__lte=end)
    notifications = {}
    for channel in ('email', 'sms', 'whatsapp', 'push'):
        channel_qs = notes.filter(channel=channel)
        notifications[channel] = {
            'sent': channel_qs.count(),
            'delivered': channel_qs.filter(status='sent').count(),
            'failed': channel_qs.filter(status='failed').count(),
        }

    return {
        'dateRange': date_range if date_range in DATE_RANGES else 'last7days',
        'serviceType': service_type or 'all',
        'period': {'start': start.isoformat(), 'end': end.isoformat()},
        'applications': {
            'submitted': total,
            'processed': processed,
            'completed': completed_qs.count(),
            'rejected': rejected,
            'trend': trend,
        },
        'performance': {'avgProcessingTime': avg_processing},
        'services': services,
        'timeSlots': time_slots,
        'notifications': notifications,
    }

from __future__ import annotations

from datetime import timedelta
from typing import Any, Dict

from django.conf import settings
from django.core.cache import cache
from django.db.models import Count, Q, Sum
from django.utils import timezone

from portal.models import Application, Appointment, Banner

from .applications import processing_days

CACHE_KEY = 'dashboard:stats'


def _average_processing(qs) -> str:
    durations = processing_days(qs)
    if not durations:
        return 'N/A'
    days = sum(durations) / len(durations)
    if days >= 7:
        return f"{days / 7:.1f} weeks"
    return f"{days:.1f} days"


def compute_stats() -> Dict[str, Any]:
    now = timezone.now()
    today_start = timezone.localtime(now).replace(hour=0, minute=0, second=0, microsecond=0)
    qs = Application.objects.all()
    counts = qs.aggregate(
        total=Count('id'),
        pending=Count('id', filter=Q(status=Application.STATUS_SUBMITTED)),
        in_progress=Count('id', filter=Q(status=Application.STATUS_IN_PROGRESS)),
        ready=Count('id', filter=Q(status=Application.STATUS_READY)),
        completed=Count('id', filter=Q(status=Application.STATUS_COMPLETED)),
        rejected=Count('id', filter=Q(status=Application.STATUS_REJECTED)),
        today=Count('id', filter=Q(submitted_at__gte=today_start)),
        revenue=Sum('fee_amount', filter=~Q(status=Application.STATUS_REJECTED)),
    )
    active_banners = Banner.objects.filter(is_active=True).filter(
        Q(start_date__isnull=True) | Q(start_date__lte=now),
        Q(end_date__isnull=True) | Q(end_date__gte=now),
    ).count()
    stale = qs.filter(status=Application.STATUS_SUBMITTED, submitted_at__lt=now - timedelta(days=7)).count()
    return {
        'totalApplications': counts['total'],
        'pendingApplications': counts['pending'],
        'inProgressApplications': counts['in_progress'],
        'readyForCollection': counts['ready'],
        'completedApplications': counts['completed'],
        'rejectedApplications': counts['rejected'],
        'todaySubmissions': counts['today'],
        'appointmentsToday': Appointment.objects.filter(
            appointment_date=timezone.localdate(),
        ).exclude(status=Appointment.STATUS_CANCELLED).count(),
        'averageProcessingTime': _average_processing(qs),
        'totalRevenue': float(counts['revenue'] or 0),
        'systemHealth': 'Attention' if stale else 'Healthy',
        'activeNotifications': active_banners,
        'generatedAt': now.isoformat(),
    }


def get_stats(refresh: bool = False) -> Dict[str, Any]:
    if not refresh:
        cached = cache.get(CACHE_KEY)
        if cached:
            return cached
    stats = compute_stats()
    cache.set(CACHE_KEY, stats, settings.DASHBOARD_CACHE_SECONDS)
    return stats


def invalidate() -> None:
    cache.delete(CACHE_KEY)

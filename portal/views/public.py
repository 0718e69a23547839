"""
Public endpoints used by the citizen-facing site.

No authentication is required here; DRF throttling still applies and
submission and booking have their own scoped rates.
"""
from __future__ import annotations

from django.db.models import Q
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from ..models import Banner, Service
from ..services.applications import (
    ApplicationError,
    find_application,
    serialize_application,
    submit_application,
)
from .common import body, error


def serialize_service(service: Service) -> dict:
    return {
        'id': service.service_id,
        'serviceId': service.service_id,
        'title': service.title,
        'description': service.description,
        'category': service.category,
        'isActive': service.is_active,
        'processingTime': service.processing_time,
        'fee': service.fee,
        'feeAmount': float(service.fee_amount or 0),
        'requirements': service.requirements or [],
        'slotTimes': service.slot_times or [],
        'slotDuration': service.slot_duration,
        'maxDaily': service.max_daily,
        'createdAt': service.created_at.isoformat() if service.created_at else None,
        'updatedAt': service.updated_at.isoformat() if service.updated_at else None,
    }


def serialize_banner(banner: Banner) -> dict:
    return {
        'id': banner.id,
        'title': banner.title,
        'subtitle': banner.subtitle,
        'content': banner.content,
        'type': banner.type,
        'isActive': banner.is_active,
        'priority': banner.priority,
        'startDate': banner.start_date.isoformat() if banner.start_date else None,
        'endDate': banner.end_date.isoformat() if banner.end_date else None,
        'targetPages': banner.target_pages or [],
        'createdAt': banner.created_at.isoformat() if banner.created_at else None,
        'updatedAt': banner.updated_at.isoformat() if banner.updated_at else None,
    }


def live_banners(page: str | None = None):
    """Active banners whose window contains now, optionally for one page."""
    now = timezone.now()
    banners = Banner.objects.filter(is_active=True).filter(
        Q(start_date__isnull=True) | Q(start_date__lte=now),
        Q(end_date__isnull=True) | Q(end_date__gte=now),
    ).order_by('priority', 'id')
    if not page:
        return list(banners)
    # target_pages is a JSON list; an empty list means every page
    return [b for b in banners if not b.target_pages or page in b.target_pages or 'all' in b.target_pages]


@api_view(['GET'])
@permission_classes([AllowAny])
def list_services(request):
    qs = Service.objects.filter(is_active=True).order_by('category', 'title')
    category = request.query_params.get('category')
    if category and category != 'all':
        qs = qs.filter(category=category)
    return Response({'success': True, 'services': [serialize_service(s) for s in qs]})


@api_view(['GET'])
@permission_classes([AllowAny])
def service_detail(request, service_id: str):
    service = get_object_or_404(Service, service_id=service_id, is_active=True)
    return Response({'success': True, 'service': serialize_service(service)})


@api_view(['GET'])
@permission_classes([AllowAny])
def public_banners(request):
    page = request.query_params.get('page')
    return Response({'success': True, 'banners': [serialize_banner(b) for b in live_banners(page)]})


@api_view(['GET', 'POST'])
@permission_classes([AllowAny])
def application_submit(request):
    if request.method == 'GET':
        application_id = (request.query_params.get('id') or '').strip()
        if not application_id:
            return error('Application ID is required')
        app = find_application(application_id)
        if app is None:
            return error('Application not found', 404)
        return Response({'success': True, 'application': serialize_application(app)})

    user = request.user if getattr(request.user, 'is_authenticated', False) else None
    try:
        app = submit_application(body(request), user=user)
    except ApplicationError as exc:
        return error(str(exc))
    return Response({
        'success': True,
        'applicationId': app.application_id,
        'message': 'Application submitted successfully',
        'expectedCompletion': app.expected_completion.isoformat(),
        'status': app.status,
    })

application_submit.throttle_scope = 'application_submit'

"""
Back office application management.

Officers list and search applications, change a single application's
status, or apply one status to many applications at once.  Every change
lands in the application's timeline and in the audit log.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import Application
from ..permissions import IsAdminRole
from ..services import dashboard
from ..services.applications import (
    VALID_STATUSES,
    ApplicationError,
    bulk_change_status,
    change_status,
    filter_applications,
    serialize_application,
)
from ..services.audit import log_action
from ..services.security import InputValidator, SecurityUtils
from .common import body, error, paginate, parse_int


@api_view(['GET', 'PUT'])
@permission_classes([IsAuthenticated, IsAdminRole])
def admin_applications(request):
    if request.method == 'GET':
        params = request.query_params
        page = parse_int(params.get('page'), 1)
        limit = parse_int(params.get('limit'), 10, maximum=100)
        qs = filter_applications(
            Application.objects.select_related('service').prefetch_related('timeline'),
            status=params.get('status'),
            search=(params.get('search') or '').strip(),
            service=params.get('serviceType'),
        ).order_by('-submitted_at')
        items, total, total_pages = paginate(qs, page, limit)
        return Response({
            'success': True,
            'applications': [serialize_application(a) for a in items],
            'pagination': {'page': page, 'limit': limit, 'total': total, 'totalPages': total_pages},
        })

    data = InputValidator.sanitize_input(body(request))
    application_id = data.get('applicationId')
    status_val = data.get('status')
    if not application_id or not status_val:
        return error('Application ID and status are required')
    if status_val not in VALID_STATUSES:
        return error('Invalid status')
    app = Application.objects.filter(application_id=application_id).first()
    if app is None:
        return error('Application not found', 404)
    change_status(app, status_val, notes=data.get('notes') or '', officer=request.user)
    dashboard.invalidate()
    return Response({
        'success': True,
        'message': 'Application updated successfully',
        'application': serialize_application(app),
    })


@api_view(['PUT', 'POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def bulk_update_applications(request):
    data = InputValidator.sanitize_input(body(request))
    ids = data.get('applicationIds') or data.get('application_ids')
    status_val = data.get('status') or data.get('action')
    if not ids or not isinstance(ids, list):
        return error('Application IDs array required')
    if not status_val:
        return error('Status is required')
    if status_val not in VALID_STATUSES:
        return error('Invalid status')
    try:
        results = bulk_change_status(
            ids, status_val,
            notes=data.get('notes') or '',
            officer=request.user,
            assigned_officer=data.get('assignedOfficer'),
        )
    except ApplicationError as exc:
        return error(str(exc))
    ok = sum(1 for r in results if r['success'])
    failed = len(results) - ok
    log_action(user=request.user, action='application_bulk_update', object_type='application',
               detail={'status': status_val, 'total': len(results), 'failed': failed},
               ip=SecurityUtils.client_ip(request))
    dashboard.invalidate()
    return Response({
        'success': True,
        'message': f'Bulk update completed. {ok} successful, {failed} failed.',
        'results': results,
        'summary': {'total': len(results), 'successful': ok, 'failed': failed},
    })

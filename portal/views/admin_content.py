"""
Back office content management: services, banners and notification
templates, plus ad-hoc notification sending.
"""
from __future__ import annotations

from django.db import IntegrityError, transaction
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import Banner, NotificationTemplate, Service
from ..permissions import IsAdminRole
from ..serializers.content import BannerSerializer, ServiceSerializer, TemplateSerializer
from ..services import notifications
from ..services.audit import log_action
from ..services.security import InputValidator, SecurityUtils
from .common import body, error, parse_bool, parse_int
from .public import serialize_banner, serialize_service

SERVICE_FIELDS = {
    'title': 'title', 'description': 'description', 'category': 'category',
    'isActive': 'is_active', 'processingTime': 'processing_time', 'fee': 'fee',
    'feeAmount': 'fee_amount', 'requirements': 'requirements', 'slotTimes': 'slot_times',
    'slotDuration': 'slot_duration', 'maxDaily': 'max_daily',
}
BANNER_FIELDS = {
    'title': 'title', 'subtitle': 'subtitle', 'content': 'content', 'type': 'type',
    'isActive': 'is_active', 'priority': 'priority', 'startDate': 'start_date',
    'endDate': 'end_date', 'targetPages': 'target_pages',
}
TEMPLATE_FIELDS = {
    'name': 'name', 'type': 'type', 'category': 'category', 'subject': 'subject',
    'content': 'content', 'variables': 'variables', 'isActive': 'is_active',
}


def _assign(obj, validated: dict, mapping: dict) -> None:
    for key, attr in mapping.items():
        if key in validated:
            setattr(obj, attr, validated[key])


def serialize_template(t: NotificationTemplate) -> dict:
    return {
        'id': t.id,
        'name': t.name,
        'type': t.type,
        'category': t.category,
        'subject': t.subject,
        'content': t.content,
        'variables': t.variables or [],
        'isActive': t.is_active,
        'usageCount': t.usage_count,
        'createdAt': t.created_at.isoformat() if t.created_at else None,
        'updatedAt': t.updated_at.isoformat() if t.updated_at else None,
    }


# ---------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------
@api_view(['GET', 'POST', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated, IsAdminRole])
def admin_services(request):
    ip = SecurityUtils.client_ip(request)
    if request.method == 'GET':
        qs = Service.objects.all().order_by('category', 'title')
        if not parse_bool(request.query_params.get('includeInactive')):
            qs = qs.filter(is_active=True)
        category = request.query_params.get('category')
        if category and category != 'all':
            qs = qs.filter(category=category)
        return Response({'success': True, 'services': [serialize_service(s) for s in qs]})

    if request.method == 'DELETE':
        service_id = request.query_params.get('serviceId') or request.query_params.get('id')
        if not service_id:
            return error('Service ID is required')
        deleted, _ = Service.objects.filter(service_id=service_id).delete()
        if not deleted:
            return error('Service not found', 404)
        log_action(user=request.user, action='SERVICE_DELETE', object_type='service', object_id=service_id, ip=ip)
        return Response({'success': True, 'message': 'Service deleted successfully'})

    partial = request.method == 'PUT'
    s = ServiceSerializer(data=body(request), partial=partial)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    if partial:
        service_id = vd.get('serviceId') or body(request).get('id')
        if not service_id:
            return error('Service ID is required')
        service = Service.objects.filter(service_id=service_id).first()
        if service is None:
            return error('Service not found', 404)
        _assign(service, vd, SERVICE_FIELDS)
        service.save()
        log_action(user=request.user, action='SERVICE_UPDATE', object_type='service', object_id=service_id,
                   detail={'fields': sorted(vd)}, ip=ip)
        return Response({'success': True, 'service': serialize_service(service),
                         'message': 'Service updated successfully'})

    if Service.objects.filter(service_id=vd['serviceId']).exists():
        return error('A service with this ID already exists')
    service = Service(service_id=vd['serviceId'])
    _assign(service, vd, SERVICE_FIELDS)
    try:
        with transaction.atomic():
            service.save(force_insert=True)
    except IntegrityError:
        return error('A service with this ID already exists')
    log_action(user=request.user, action='SERVICE_CREATE', object_type='service', object_id=service.service_id, ip=ip)
    return Response({'success': True, 'service': serialize_service(service),
                     'message': 'Service created successfully'}, status=201)


# ---------------------------------------------------------------------
# Banners
# ---------------------------------------------------------------------
@api_view(['GET', 'POST', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated, IsAdminRole])
def admin_banners(request):
    ip = SecurityUtils.client_ip(request)
    if request.method == 'GET':
        qs = Banner.objects.all().order_by('priority', 'id')
        if parse_bool(request.query_params.get('activeOnly')):
            qs = qs.filter(is_active=True)
        page = request.query_params.get('page')
        banners = list(qs)
        if page:
            banners = [b for b in banners if not b.target_pages or page in b.target_pages or 'all' in b.target_pages]
        return Response({'success': True, 'banners': [serialize_banner(b) for b in banners]})

    if request.method == 'DELETE':
        banner_id = parse_int(request.query_params.get('id'), 0, minimum=0)
        if not banner_id:
            return error('Banner ID is required')
        deleted, _ = Banner.objects.filter(pk=banner_id).delete()
        if not deleted:
            return error('Banner not found', 404)
        log_action(user=request.user, action='BANNER_DELETE', object_type='banner', object_id=banner_id, ip=ip)
        return Response({'success': True, 'message': 'Banner deleted successfully'})

    data = body(request)
    if request.method == 'PUT':
        banner = Banner.objects.filter(pk=parse_int(data.get('id'), 0, minimum=0)).first()
        if banner is None:
            return error('Banner not found', 404)
        s = BannerSerializer(data=data, partial=True)
        s.is_valid(raise_exception=True)
        _assign(banner, s.validated_data, BANNER_FIELDS)
        if banner.start_date and banner.end_date and banner.end_date < banner.start_date:
            return error('End date must be after start date')
        banner.save()
        log_action(user=request.user, action='BANNER_UPDATE', object_type='banner', object_id=banner.id, ip=ip)
        return Response({'success': True, 'banner': serialize_banner(banner),
                         'message': 'Banner updated successfully'})

    s = BannerSerializer(data=data)
    s.is_valid(raise_exception=True)
    banner = Banner()
    _assign(banner, s.validated_data, BANNER_FIELDS)
    banner.save()
    log_action(user=request.user, action='BANNER_CREATE', object_type='banner', object_id=banner.id, ip=ip)
    return Response({'success': True, 'banner': serialize_banner(banner),
                     'message': 'Banner created successfully'}, status=201)


# ---------------------------------------------------------------------
# Notification templates & sending
# ---------------------------------------------------------------------
@api_view(['GET', 'POST', 'PUT'])
@permission_classes([IsAuthenticated, IsAdminRole])
def notification_templates(request):
    ip = SecurityUtils.client_ip(request)
    if request.method == 'GET':
        params = request.query_params
        qs = NotificationTemplate.objects.all().order_by('category', 'name')
        if params.get('type') and params['type'] != 'all':
            qs = qs.filter(type=params['type'])
        if params.get('category') and params['category'] != 'all':
            qs = qs.filter(category=params['category'])
        if not parse_bool(params.get('includeInactive')):
            qs = qs.filter(is_active=True)
        return Response({'success': True, 'templates': [serialize_template(t) for t in qs]})

    data = body(request)
    if request.method == 'PUT':
        template = NotificationTemplate.objects.filter(pk=parse_int(data.get('id'), 0, minimum=0)).first()
        if template is None:
            return error('Template not found', 404)
        s = TemplateSerializer(data=data, partial=True)
        s.is_valid(raise_exception=True)
        _assign(template, s.validated_data, TEMPLATE_FIELDS)
        if 'content' in s.validated_data and 'variables' not in s.validated_data:
            template.variables = notifications.extract_variables(template.content)
        template.save()
        log_action(user=request.user, action='TEMPLATE_UPDATE', object_type='template', object_id=template.id, ip=ip)
        return Response({'success': True, 'template': serialize_template(template),
                         'message': 'Template updated successfully'})

    if not data.get('name') or not data.get('type') or not data.get('content'):
        return error('Name, type, and content are required')
    s = TemplateSerializer(data=data)
    s.is_valid(raise_exception=True)
    template = NotificationTemplate()
    _assign(template, s.validated_data, TEMPLATE_FIELDS)
    if not template.variables:
        template.variables = notifications.extract_variables(template.content)
    template.save()
    log_action(user=request.user, action='TEMPLATE_CREATE', object_type='template', object_id=template.id, ip=ip)
    return Response({'success': True, 'template': serialize_template(template),
                     'message': 'Template created successfully'}, status=201)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def send_notification(request):
    data = body(request)
    channel = data.get('type')
    recipients = data.get('recipients')
    template = None
    if data.get('templateId'):
        template = NotificationTemplate.objects.filter(
            pk=parse_int(data.get('templateId'), 0, minimum=0), is_active=True
        ).first()
        if template is None:
            return error('Template not found', 404)
    content = data.get('content') or (template.content if template else '')
    subject = data.get('subject') or (template.subject if template else '')

    if not channel or not recipients or not content:
        return error('Type, recipients, and content are required')
    if not isinstance(recipients, list) or not recipients:
        return error('Recipients must be a non-empty array')
    if channel not in notifications.CHANNELS:
        return error('Invalid notification type')
    if channel == 'email':
        bad = [r for r in recipients if not InputValidator.is_valid_email(str(r))]
        if bad:
            return error('Invalid email recipients', invalidRecipients=bad)

    result = notifications.dispatch(
        channel=channel,
        recipients=recipients,
        content=content,
        subject=subject,
        template=template,
        data=data.get('data') if isinstance(data.get('data'), dict) else {},
        sent_by=request.user,
    )
    log_action(user=request.user, action='NOTIFICATION_SEND', object_type='notification',
               object_id=result.notification_id, detail={'channel': channel, **result.summary},
               ip=SecurityUtils.client_ip(request))
    return Response({
        'success': True,
        'notificationId': result.notification_id,
        'message': f'{channel.upper()} notification processed',
        'recipientCount': len(result.results),
        'results': result.results,
        'summary': result.summary,
    })

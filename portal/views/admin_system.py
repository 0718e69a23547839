"""
Dashboard, system and deployment endpoints of the back office.

Configuration reads are open to every admin; changing or resetting the
configuration is reserved for super admins.
"""
from __future__ import annotations

from django.conf import settings
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import Deployment
from ..permissions import IsAdminRole, IsSuperAdmin
from ..services import alerts, analytics, dashboard, system_config, system_status
from ..services.audit import log_action
from ..services.security import SecurityUtils
from .common import body, error, parse_bool, parse_int


def _actor(user) -> str:
    return user.email or user.username


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def dashboard_stats(request):
    stats = dashboard.get_stats(refresh=parse_bool(request.query_params.get('refresh')))
    return Response({'success': True, 'stats': stats})


class _ConfigPermission(IsSuperAdmin):
    """Admins may read, super admins may write."""

    def has_permission(self, request, view) -> bool:
        if request.method == 'GET':
            return True
        return super().has_permission(request, view)


@api_view(['GET', 'PUT', 'POST'])
@permission_classes([IsAuthenticated, IsAdminRole, _ConfigPermission])
def system_config_view(request):
    ip = SecurityUtils.client_ip(request)
    if request.method == 'GET':
        return Response({'success': True, 'config': system_config.get_config()})

    if request.method == 'PUT':
        data = body(request)
        if not isinstance(data, dict) or not data:
            return error('Configuration data is required')
        config = system_config.update_config(data, _actor(request.user))
        log_action(user=request.user, action='SYSTEM_CONFIG_UPDATE', object_type='system_config',
                   detail={'sections': sorted(k for k in data if k in system_config.SECTIONS)},
                   ip=ip, severity='medium')
        return Response({'success': True, 'config': config,
                         'message': 'System configuration updated successfully'})

    config = system_config.reset_config(_actor(request.user))
    log_action(user=request.user, action='SYSTEM_CONFIG_RESET', object_type='system_config',
               ip=ip, severity='high')
    return Response({'success': True, 'config': config,
                     'message': 'System configuration reset to defaults'})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def system_status_view(request):
    return Response({'success': True, 'status': system_status.collect()})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def system_alerts(request):
    return Response({'success': True, 'alerts': alerts.collect()})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def analytics_view(request):
    date_range = request.query_params.get('dateRange') or 'last7days'
    service_type = request.query_params.get('serviceType') or 'all'
    data = analytics.build_analytics(date_range, service_type)
    log_action(user=request.user, action='VIEW_ANALYTICS', object_type='analytics',
               detail={'dateRange': date_range, 'serviceType': service_type},
               ip=SecurityUtils.client_ip(request))
    return Response({'success': True, 'analytics': data})


def _serialize_deployment(d: Deployment) -> dict:
    return {
        'deploymentId': d.id,
        'version': d.version,
        'environment': d.environment,
        'status': d.status,
        'notes': d.notes,
        'deployedBy': d.deployed_by,
        'deployedAt': d.deployed_at.isoformat() if d.deployed_at else None,
    }


@api_view(['GET', 'POST', 'PUT'])
@permission_classes([IsAuthenticated, IsAdminRole])
def deploy_view(request):
    ip = SecurityUtils.client_ip(request)
    if request.method == 'GET':
        history = list(Deployment.objects.all()[:20])
        last_success = next((d for d in history if d.status == 'success'), None)
        return Response({
            'success': True,
            'currentVersion': last_success.version if last_success else settings.PORTAL_VERSION,
            'lastDeployment': last_success.deployed_at.isoformat() if last_success else None,
            'environment': settings.ENV,
            'status': 'deploying' if any(d.status == 'initiated' for d in history[:1]) else 'stable',
            'deploymentHistory': [_serialize_deployment(d) for d in history],
        })

    data = body(request)
    if request.method == 'POST':
        version = (data.get('version') or '').strip()
        if not version:
            return error('Version is required')
        environment = data.get('environment') or 'production'
        deployment = Deployment.objects.create(
            version=version,
            environment=environment,
            notes=data.get('notes') or '',
            deployed_by=_actor(request.user),
        )
        log_action(user=request.user, action='DEPLOYMENT_START', object_type='deployment',
                   object_id=deployment.id, detail={'version': version, 'environment': environment},
                   ip=ip, severity='high')
        return Response({
            'success': True,
            'deploymentId': deployment.id,
            'deployment': _serialize_deployment(deployment),
            'message': f'Deployment to {environment} initiated',
        }, status=202)

    if data.get('deploymentId'):
        deployment = Deployment.objects.filter(pk=parse_int(data['deploymentId'], 0, minimum=0)).first()
        if deployment is None:
            return error('Deployment not found', 404)
        if data.get('status') not in ('success', 'failed'):
            return error('Invalid status')
        deployment.status = data['status']
        deployment.save(update_fields=['status'])
        log_action(user=request.user, action='DEPLOYMENT_COMPLETE', object_type='deployment',
                   object_id=deployment.id, detail={'status': deployment.status}, ip=ip)
        return Response({'success': True, 'deployment': _serialize_deployment(deployment)})

    log_action(user=request.user, action='DEPLOYMENT_CONFIG_UPDATE', object_type='deployment',
               detail={'keys': sorted(data)}, ip=ip, severity='medium')
    return Response({'success': True, 'message': 'Deployment configuration updated successfully'})

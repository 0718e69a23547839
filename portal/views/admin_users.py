"""
User administration endpoints.

Admins manage applicant and staff accounts individually or in bulk.
Bulk actions report a per-user outcome; admins can never delete or
deactivate their own account through these endpoints.
"""
from __future__ import annotations

from django.contrib.auth import get_user_model
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..permissions import IsAdminRole
from ..services import users as accounts
from ..services.audit import log_action
from ..services.security import SecurityUtils
from .common import body, error, paginate, parse_int

User = get_user_model()


def _lookup(user_id):
    try:
        return User.objects.filter(pk=int(user_id)).first()
    except (TypeError, ValueError):
        return None


@api_view(['GET', 'POST', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated, IsAdminRole])
def admin_users(request):
    ip = SecurityUtils.client_ip(request)

    if request.method == 'GET':
        params = request.query_params
        page = parse_int(params.get('page'), 1)
        limit = parse_int(params.get('limit'), 10, maximum=100)
        qs = accounts.filter_users(
            User.objects.all(),
            role=params.get('role'),
            status=params.get('status'),
            search=(params.get('search') or '').strip(),
        ).order_by('-registered_at', '-id')
        items, total, total_pages = paginate(qs, page, limit)
        return Response({
            'success': True,
            'users': [accounts.serialize_user(u) for u in items],
            'pagination': {'currentPage': page, 'totalPages': total_pages, 'totalUsers': total, 'limit': limit},
        })

    if request.method == 'POST':
        try:
            user = accounts.create_user(body(request), request.user)
        except accounts.UserAdminError as exc:
            return error(str(exc), exc.status)
        log_action(user=request.user, action='USER_CREATE', object_type='user', object_id=user.id,
                   detail={'email': user.email, 'role': user.role}, ip=ip)
        return Response({'success': True, 'user': accounts.serialize_user(user),
                         'message': 'User created successfully'}, status=201)

    if request.method == 'PUT':
        data = body(request)
        user_id = data.pop('userId', None)
        if not user_id:
            return error('User ID is required')
        user = _lookup(user_id)
        if user is None:
            return error('User not found', 404)
        if user.pk == request.user.pk and data.get('status') not in (None, 'active'):
            return error('You cannot deactivate your own account')
        try:
            accounts.update_user(user, data, request.user)
        except accounts.UserAdminError as exc:
            return error(str(exc), exc.status)
        log_action(user=request.user, action='USER_UPDATE', object_type='user', object_id=user.id,
                   detail={'fields': sorted(data)}, ip=ip)
        return Response({'success': True, 'user': accounts.serialize_user(user),
                         'message': 'User updated successfully'})

    # DELETE
    user_id = request.query_params.get('userId')
    if not user_id:
        return error('User ID is required')
    user = _lookup(user_id)
    if user is None:
        return error('User not found', 404)
    if user.pk == request.user.pk:
        return error('You cannot delete your own account')
    user.delete()
    log_action(user=request.user, action='USER_DELETE', object_type='user', object_id=user_id, ip=ip)
    return Response({'success': True, 'message': 'User deleted successfully'})


@api_view(['PUT', 'POST', 'DELETE'])
@permission_classes([IsAuthenticated, IsAdminRole])
def admin_users_bulk(request):
    ip = SecurityUtils.client_ip(request)
    data = body(request)

    if request.method == 'POST':
        rows = data.get('users')
        if not rows or not isinstance(rows, list):
            return error('Users array is required')
        for row in rows:
            for field in ('firstName', 'lastName', 'email'):
                if not isinstance(row, dict) or not row.get(field):
                    return error(f'{field} is required for all users')
        try:
            results = accounts.bulk_create(rows, request.user)
        except accounts.UserAdminError as exc:
            return error(str(exc), exc.status)
        log_action(user=request.user, action='BULK_USER_CREATE', object_type='user',
                   detail={'count': results['total']}, ip=ip)
        return Response({'success': True, 'message': f"{results['total']} users created successfully",
                         'results': results}, status=201)

    user_ids = data.get('userIds')
    if not user_ids or not isinstance(user_ids, list):
        return error('User IDs array is required')

    if request.method == 'DELETE':
        action = 'delete'
    else:
        action = data.get('action')
        if not action:
            return error('Action is required')
        if action not in accounts.BULK_ACTIONS:
            return error('Invalid action')

    try:
        results = accounts.bulk_action(request.user, user_ids, action, data.get('data') or {})
    except accounts.UserAdminError as exc:
        return error(str(exc), exc.status)
    log_action(user=request.user, action='BULK_USER_OPERATION', object_type='user',
               detail={'operation': action, 'userIds': [str(u) for u in user_ids],
                       'success': results['success'], 'failed': results['failed']}, ip=ip)
    message = (f"{results['success']} users deleted successfully" if request.method == 'DELETE'
               else f'Bulk {action} operation completed')
    return Response({'success': True, 'message': message, 'results': results})

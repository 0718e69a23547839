"""
Account administration for the back office.

Accounts created here use the email address as username and get an
unusable password unless one is supplied.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.db.models import Q

from .security import InputValidator

User = get_user_model()

ROLE_ALIASES = {'user': 'applicant', 'super-admin': 'super_admin'}
VALID_ROLES = [choice for choice, _ in User.ROLE_CHOICES]
VALID_STATUSES = [choice for choice, _ in User.STATUS_CHOICES]
BULK_ACTIONS = ('activate', 'deactivate', 'verify', 'unverify', 'delete', 'update_role')
EDITABLE_PROFILE_KEYS = (
    'passportNumber', 'nationality', 'dateOfBirth', 'address',
    'department', 'position', 'permissions',
)


class UserAdminError(ValueError):
    status = 400


class RoleChangeForbidden(UserAdminError):
    status = 403


def normalize_role(role: Optional[str]) -> Optional[str]:
    if role is None:
        return None
    return ROLE_ALIASES.get(role, role)


def _check_role_change(actor, new_role: str, current_role: Optional[str] = None) -> None:
    """Only super admins may grant or revoke the super_admin role."""
    touches_super = new_role == 'super_admin' or current_role == 'super_admin'
    if touches_super and new_role != current_role and getattr(actor, 'role', None) != 'super_admin':
        raise RoleChangeForbidden('Only super admins can grant or revoke super admin access')


def serialize_user(user) -> dict:
    return {
        'userId': user.id,
        'username': user.username,
        'firstName': user.first_name,
        'lastName': user.last_name,
        'email': user.email,
        'phone': user.phone,
        'role': user.role,
        'status': user.status,
        'isVerified': user.is_verified,
        'twoFactorEnabled': user.two_factor_enabled,
        'lastLogin': user.last_login.isoformat() if user.last_login else None,
        'registeredAt': user.registered_at.isoformat() if user.registered_at else None,
        'profile': user.profile or {},
    }


def filter_users(qs, *, role: Optional[str] = None, status: Optional[str] = None, search: Optional[str] = None):
    role = normalize_role(role)
    if role and role != 'all':
        qs = qs.filter(role=role)
    if status and status != 'all':
        qs = qs.filter(status=status)
    if search:
        qs = qs.filter(
            Q(first_name__icontains=search) | Q(last_name__icontains=search)
            | Q(email__icontains=search) | Q(username__icontains=search)
        )
    return qs


def _profile_from(data: Dict[str, Any], current: Optional[dict] = None) -> dict:
    profile = dict(current or {})
    incoming = data.get('profile') if isinstance(data.get('profile'), dict) else {}
    for key in EDITABLE_PROFILE_KEYS:
        if key in incoming:
            profile[key] = incoming[key]
    return profile


def create_user(data: Dict[str, Any], actor=None):
    password = data.get('password')
    data = InputValidator.sanitize_input({k: v for k, v in data.items() if k != 'password'})
    email = (data.get('email') or '').strip().lower()
    if not email:
        raise UserAdminError('Email is required')
    if not InputValidator.is_valid_email(email):
        raise UserAdminError('Invalid email format')
    if User.objects.filter(Q(email__iexact=email) | Q(username__iexact=email)).exists():
        raise UserAdminError('A user with this email already exists')
    role = normalize_role(data.get('role')) or 'applicant'
    if role not in VALID_ROLES:
        raise UserAdminError('Invalid role')
    _check_role_change(actor, role)
    try:
        user = User(
            username=email,
            email=email,
            first_name=data.get('firstName') or '',
            last_name=data.get('lastName') or '',
            phone=data.get('phone') or '',
            role=role,
            status='active',
            is_verified=False,
            profile=_profile_from(data),
        )
        if password:
            user.set_password(password)
        else:
            user.set_unusable_password()
        user.save()
    except IntegrityError:
        raise UserAdminError('A user with this email already exists')
    return user


def update_user(user, data: Dict[str, Any], actor=None):
    data = InputValidator.sanitize_input(dict(data))
    if 'firstName' in data:
        user.first_name = data['firstName'] or ''
    if 'lastName' in data:
        user.last_name = data['lastName'] or ''
    if 'phone' in data:
        user.phone = data['phone'] or ''
    if 'email' in data and data['email']:
        email = data['email'].strip().lower()
        if not InputValidator.is_valid_email(email):
            raise UserAdminError('Invalid email format')
        if User.objects.exclude(pk=user.pk).filter(email__iexact=email).exists():
            raise UserAdminError('A user with this email already exists')
        user.email = email
    if 'role' in data:
        role = normalize_role(data['role'])
        if role not in VALID_ROLES:
            raise UserAdminError('Invalid role')
        _check_role_change(actor, role, user.role)
        user.role = role
    if 'status' in data:
        if data['status'] not in VALID_STATUSES:
            raise UserAdminError('Invalid status')
        user.status = data['status']
        user.is_active = data['status'] == 'active'
    if 'isVerified' in data:
        user.is_verified = bool(data['isVerified'])
    if 'profile' in data:
        user.profile = _profile_from(data, user.profile)
    user.save()
    return user


def _apply(user, action: str, data: Dict[str, Any], actor=None) -> str:
    if action == 'activate':
        user.status, user.is_active = 'active', True
    elif action == 'deactivate':
        user.status, user.is_active = 'inactive', False
    elif action == 'verify':
        user.is_verified = True
    elif action == 'unverify':
        user.is_verified = False
    elif action == 'update_role':
        role = normalize_role((data or {}).get('role'))
        if role not in VALID_ROLES:
            raise UserAdminError('Invalid role')
        _check_role_change(actor, role, user.role)
        user.role = role
    elif action == 'delete':
        user.delete()
        return 'User deleted successfully'
    user.save()
    return f"{action} completed successfully"


def bulk_action(actor, user_ids: Iterable[Any], action: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    if action not in BULK_ACTIONS:
        raise UserAdminError('Invalid action')
    details: List[Dict[str, Any]] = []
    for raw_id in user_ids:
        entry = {'userId': raw_id}
        try:
            user = User.objects.get(pk=int(raw_id))
        except (TypeError, ValueError, User.DoesNotExist):
            details.append({**entry, 'status': 'failed', 'message': 'User not found'})
            continue
        if user.pk == getattr(actor, 'pk', None) and action in ('delete', 'deactivate'):
            details.append({**entry, 'status': 'failed', 'message': 'You cannot apply this action to your own account'})
            continue
        try:
            with transaction.atomic():
                message = _apply(user, action, data or {}, actor)
        except UserAdminError as exc:
            details.append({**entry, 'status': 'failed', 'message': str(exc)})
            continue
        details.append({**entry, 'status': 'success', 'message': message})
    succeeded = sum(1 for d in details if d['status'] == 'success')
    return {'success': succeeded, 'failed': len(details) - succeeded, 'total': len(details), 'details': details}


def bulk_create(rows: List[Dict[str, Any]], actor=None) -> Dict[str, Any]:
    """Create every row or none; callers have already checked required fields."""
    details = []
    with transaction.atomic():
        for row in rows:
            user = create_user(row, actor)
            details.append({
                'userData': {k: row.get(k) for k in ('firstName', 'lastName', 'email')},
                'userId': user.id,
                'status': 'success',
                'message': 'User created successfully',
            })
    return {'success': len(details), 'failed': 0, 'total': len(details), 'details': details}

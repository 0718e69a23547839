"""
The singleton system configuration document.

Defaults live here; the stored row only ever holds a full document, so
readers never have to merge with defaults themselves.  Updates are deep
merged into the known top-level sections and anything else is ignored.
"""
from __future__ import annotations

import copy
import logging
from typing import Any, Dict

from django.core.cache import cache
from django.db import transaction

from portal.models import SystemConfig

logger = logging.getLogger(__name__)

CACHE_KEY = 'system:config'
SECTIONS = ('general', 'appearance', 'features', 'security', 'integrations')

DEFAULT_CONFIG: Dict[str, Any] = {
    'general': {
        'siteName': 'Indian Consular Services',
        'siteDescription': 'Official Consular Services for Indian Citizens',
        'contactEmail': 'support@indianconsulate.com',
        'contactPhone': '+27 11 895 0460',
        'address': 'Johannesburg, South Africa',
        'timezone': 'Africa/Johannesburg',
        'language': 'en',
        'currency': 'ZAR',
        'dateFormat': 'DD/MM/YYYY',
        'timeFormat': '24h',
        'lastMaintenance': '2024-01-01',
    },
    'appearance': {
        'theme': 'default',
        'primaryColor': '#1e40af',
        'secondaryColor': '#f97316',
        'logo': '/images/logo.png',
        'favicon': '/favicon.ico',
        'backgroundImages': ['/images/bg1.jpg', '/images/bg2.jpg'],
        'customCSS': '',
    },
    'features': {
        'onlineApplications': True,
        'appointmentBooking': True,
        'documentUpload': True,
        'paymentGateway': True,
        'notifications': True,
        'multiLanguage': True,
        'whatsappIntegration': True,
        'analytics': True,
    },
    'security': {
        'sessionTimeout': 30,
        'maxLoginAttempts': 5,
        'passwordPolicy': {
            'minLength': 8,
            'requireUppercase': True,
            'requireLowercase': True,
            'requireNumbers': True,
            'requireSpecialChars': True,
        },
        'twoFactorAuth': False,
        'ipWhitelist': [],
        'rateLimiting': {
            'enabled': True,
            'maxRequests': 100,
            'windowMinutes': 15,
        },
    },
    'integrations': {
        'email': {
            'provider': 'smtp',
            'host': 'smtp.gmail.com',
            'port': 587,
            'secure': False,
            'username': 'noreply@indianconsulate.com',
        },
        'sms': {'provider': 'twilio', 'enabled': False},
        'payment': {'provider': 'payfast', 'enabled': True, 'testMode': False},
        'storage': {
            'provider': 'local',
            'maxFileSize': 10485760,
            'allowedTypes': ['pdf', 'jpg', 'jpeg', 'png', 'doc', 'docx'],
        },
    },
}


def deep_merge(base: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    """Return ``base`` with ``updates`` merged in; nested dicts merge, other values replace."""
    merged = copy.deepcopy(base)
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _load() -> SystemConfig:
    obj = SystemConfig.objects.filter(pk=1).first()
    if obj is None:
        obj = SystemConfig.objects.create(pk=1, data=copy.deepcopy(DEFAULT_CONFIG), updated_by='system')
    return obj


def _serialize(obj: SystemConfig) -> Dict[str, Any]:
    data = deep_merge(DEFAULT_CONFIG, obj.data or {})
    data['lastUpdated'] = obj.updated_at.isoformat() if obj.updated_at else None
    data['updatedBy'] = obj.updated_by
    return data


def get_config() -> Dict[str, Any]:
    data = cache.get(CACHE_KEY)
    if data is None:
        data = _serialize(_load())
        cache.set(CACHE_KEY, data, 300)
    return data


def get_section(name: str) -> Dict[str, Any]:
    return get_config().get(name, {})


@transaction.atomic
def update_config(updates: Dict[str, Any], updated_by: str) -> Dict[str, Any]:
    obj = _load()
    known = {k: v for k, v in updates.items() if k in SECTIONS and isinstance(v, dict)}
    ignored = sorted(set(updates) - set(known))
    if ignored:
        logger.info("Ignoring unknown config sections: %s", ", ".join(ignored))
    obj.data = deep_merge(obj.data or DEFAULT_CONFIG, known)
    obj.updated_by = updated_by
    obj.save()
    cache.delete(CACHE_KEY)
    return _serialize(obj)


@transaction.atomic
def reset_config(updated_by: str) -> Dict[str, Any]:
    obj = _load()
    obj.data = copy.deepcopy(DEFAULT_CONFIG)
    obj.updated_by = updated_by
    obj.save()
    cache.delete(CACHE_KEY)
    return _serialize(obj)

"""
Input validation and security event helpers.

``InputValidator`` cleans request payloads before they reach the
database and rejects obvious injection attempts on credential fields.
``log_security_event`` writes to the ``portal.security`` logger and keeps
a persistent ``AuditEvent`` row for the back office.
"""
from __future__ import annotations

import logging
import re
import secrets
from typing import Any

import bleach

from .audit import log_action

security_logger = logging.getLogger('portal.security')

_SEVERITY_LEVELS = {
    'low': logging.INFO,
    'medium': logging.WARNING,
    'high': logging.ERROR,
    'critical': logging.CRITICAL,
}


class InputValidator:
    EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
    PHONE_PATTERN = re.compile(r'^\+?[0-9\s\-()]{7,20}$')
    SQL_INJECTION_PATTERNS = [
        re.compile(r"('|\")\s*(or|and)\s+('|\"|\d)", re.IGNORECASE),
        re.compile(r"\b(union\s+(all\s+)?select|insert\s+into|delete\s+from|drop\s+(table|database)|update\s+\w+\s+set)\b", re.IGNORECASE),
        re.compile(r"(--|/\*|\*/)"),
        re.compile(r";\s*(select|insert|update|delete|drop|alter|create|exec)\b", re.IGNORECASE),
        re.compile(r"\b(exec|execute)\s*\(", re.IGNORECASE),
        re.compile(r"\bor\s+1\s*=\s*1\b", re.IGNORECASE),
    ]

    @classmethod
    def sanitize_input(cls, value: Any) -> Any:
        """Strip HTML from every string in ``value``, recursing into containers."""
        if isinstance(value, str):
            return bleach.clean(value, tags=set(), attributes={}, strip=True).strip()
        if isinstance(value, dict):
            return {k: cls.sanitize_input(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [cls.sanitize_input(v) for v in value]
        return value

    @classmethod
    def contains_sql_injection(cls, value: Any) -> bool:
        if not isinstance(value, str):
            return False
        return any(p.search(value) for p in cls.SQL_INJECTION_PATTERNS)

    @classmethod
    def is_valid_email(cls, value: Any) -> bool:
        return isinstance(value, str) and bool(cls.EMAIL_PATTERN.match(value))

    @classmethod
    def is_valid_phone(cls, value: Any) -> bool:
        return isinstance(value, str) and bool(cls.PHONE_PATTERN.match(value))


class SecurityUtils:

    @staticmethod
    def generate_secure_token(length: int = 32) -> str:
        """Hex token of ``length`` characters."""
        return secrets.token_hex((length + 1) // 2)[:length]

    @staticmethod
    def client_ip(request) -> str:
        forwarded = request.META.get('HTTP_X_FORWARDED_FOR', '')
        if forwarded:
            return forwarded.split(',')[0].strip()
        return request.META.get('REMOTE_ADDR') or 'unknown'

    @staticmethod
    def user_agent(request) -> str:
        return request.META.get('HTTP_USER_AGENT', 'unknown')[:512]


def log_security_event(event: str, detail: dict | None = None, severity: str = 'low',
                       ip: str | None = None, user=None):
    detail = detail or {}
    security_logger.log(_SEVERITY_LEVELS.get(severity, logging.INFO), "%s ip=%s %s", event, ip, detail)
    return log_action(
        user=user,
        action=event,
        object_type='security',
        detail=detail,
        ip=ip,
        severity=severity,
    )

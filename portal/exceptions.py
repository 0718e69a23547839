"""
Exception handling for the JSON API.

Every error leaves the API as ``{"success": false, "error": "..."}`` so
the front end can show ``error`` directly.  Serializer validation errors
additionally carry the field mapping under ``details``.
"""
from __future__ import annotations

import logging

from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.http import Http404
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


def _first_message(data) -> str:
    if isinstance(data, dict):
        for value in data.values():
            return _first_message(value)
        return 'Invalid input'
    if isinstance(data, (list, tuple)):
        return _first_message(data[0]) if data else 'Invalid input'
    return str(data)


def api_exception_handler(exc, context):
    resp = drf_exception_handler(exc, context)
    if resp is None:
        view = context.get('view')
        logger.exception("Unhandled error in %s", getattr(view, '__name__', view))
        return Response({'success': False, 'error': 'Internal server error'}, status=500)

    if isinstance(exc, ValidationError):
        body = {'success': False, 'error': _first_message(resp.data), 'details': resp.data}
    elif isinstance(resp.data, dict) and 'detail' in resp.data:
        body = {'success': False, 'error': str(resp.data['detail'])}
    elif isinstance(exc, Http404):
        body = {'success': False, 'error': 'Not found'}
    elif isinstance(exc, DjangoPermissionDenied):
        body = {'success': False, 'error': 'Permission denied'}
    else:
        body = {'success': False, 'error': _first_message(resp.data)}
    resp.data = body
    return resp

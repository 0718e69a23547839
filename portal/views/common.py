"""Small helpers shared by the API views."""
from __future__ import annotations

import math
from typing import Any, Tuple

from rest_framework.response import Response


def error(message: str, status: int = 400, **extra: Any) -> Response:
    return Response({'success': False, 'error': message, **extra}, status=status)


def parse_int(value: Any, default: int, *, minimum: int = 1, maximum: int | None = None) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    number = max(minimum, number)
    if maximum is not None:
        number = min(maximum, number)
    return number


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or '').strip().lower() in {'1', 'true', 'yes', 'on'}


def paginate(qs, page: int, limit: int) -> Tuple[list, int, int]:
    """Return (items, total, total_pages) for a 1-based page."""
    total = qs.count()
    start = (page - 1) * limit
    return list(qs[start:start + limit]), total, math.ceil(total / limit) if limit else 0


def body(request) -> dict:
    """Request payload as a plain dict (JSON bodies keep their lists)."""
    data = request.data
    if hasattr(data, 'dict'):
        return data.dict()
    return dict(data) if isinstance(data, dict) else {}

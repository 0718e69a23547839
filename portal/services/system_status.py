"""Host and dependency health for the back office status page."""
from __future__ import annotations

import os
import shutil
import time
from typing import Any, Dict

from django.conf import settings
from django.db import connections

_STARTED = time.time()

CPU_WARN = 80
MEMORY_WARN = 90
DISK_WARN = 90


def _uptime() -> str:
    seconds = int(time.time() - _STARTED)
    return f"{seconds // 3600}h {(seconds % 3600) // 60}m"


def _cpu_percent() -> int:
    try:
        load1, _, _ = os.getloadavg()
    except (AttributeError, OSError):
        return 0
    return min(100, int(load1 / (os.cpu_count() or 1) * 100))


def _memory_percent() -> int:
    try:
        with open('/proc/meminfo') as fh:
            info = dict(line.split(':', 1) for line in fh if ':' in line)
        total = int(info['MemTotal'].split()[0])
        available = int(info['MemAvailable'].split()[0])
    except (OSError, KeyError, ValueError):
        return 0
    return int((total - available) / total * 100) if total else 0


def _disk_percent() -> int:
    try:
        usage = shutil.disk_usage(str(settings.BASE_DIR))
    except OSError:
        return 0
    return int(usage.used / usage.total * 100) if usage.total else 0


def _database() -> Dict[str, Any]:
    started = time.monotonic()
    try:
        with connections['default'].cursor() as c:
            c.execute('SELECT 1')
            c.fetchone()
    except Exception as exc:
        return {'status': 'error', 'responseTime': None, 'error': str(exc)}
    elapsed = int((time.monotonic() - started) * 1000)
    return {
        'status': 'warning' if elapsed > 1000 else 'healthy',
        'responseTime': elapsed,
        'vendor': connections['default'].vendor,
    }


def _services() -> Dict[str, str]:
    email_backend = settings.EMAIL_BACKEND.rsplit('.', 1)[0]
    return {
        'email': 'active' if 'smtp' in email_backend else 'development',
        'cache': settings.CACHES['default']['BACKEND'].rsplit('.', 1)[-1],
        'phpApi': 'configured' if settings.PHP_API_URL else 'disabled',
        'storage': 'active',
    }


def collect() -> Dict[str, Any]:
    cpu, memory, disk = _cpu_percent(), _memory_percent(), _disk_percent()
    database = _database()
    server_status = 'healthy'
    if cpu > CPU_WARN or memory > MEMORY_WARN or disk > DISK_WARN:
        server_status = 'warning'
    if database['status'] == 'error':
        server_status = 'error'
    return {
        'server': {
            'status': server_status,
            'uptime': _uptime(),
            'cpu': cpu,
            'memory': memory,
            'disk': disk,
            'version': settings.PORTAL_VERSION,
        },
        'database': database,
        'services': _services(),
    }

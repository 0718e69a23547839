"""
Request-level security for the portal.

``SecurityMiddleware`` throttles ``/api/`` traffic per client IP using
the ``security.rateLimiting`` section of the system configuration,
adds the browser security headers to every response and records admin
path access on the ``portal.security`` logger.
"""
import logging
import time

from django.http import JsonResponse

from .services import system_config
from .services.ratelimit import RateLimitManager
from .services.security import SecurityUtils

logger = logging.getLogger(__name__)
security_logger = logging.getLogger('portal.security')

SECURITY_HEADERS = {
    'X-Content-Type-Options': 'nosniff',
    'X-Frame-Options': 'DENY',
    'X-XSS-Protection': '1; mode=block',
    'Referrer-Policy': 'strict-origin-when-cross-origin',
    'Permissions-Policy': 'camera=(), microphone=(), geolocation=()',
    'Content-Security-Policy': (
        "default-src 'self'; script-src 'self' 'unsafe-inline'; "
        "style-src 'self' 'unsafe-inline'; img-src 'self' data: https:; "
        "connect-src 'self' ws: wss:; frame-ancestors 'none'"
    ),
}


class SecurityMiddleware:
    API_PREFIX = '/api/'
    ADMIN_PREFIX = '/api/admin'

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        started = time.perf_counter()
        path = request.path or ''
        try:
            blocked = self._throttle(request, path)
        except Exception:
            logger.exception("MIDDLEWARE_ERROR path=%s", path)
            blocked = None
        if blocked is not None:
            return self._finish(blocked, started)

        if path.startswith(self.ADMIN_PREFIX):
            security_logger.info(
                "ADMIN_ACCESS ip=%s method=%s path=%s ua=%s",
                SecurityUtils.client_ip(request), request.method, path,
                SecurityUtils.user_agent(request),
            )
        return self._finish(self.get_response(request), started)

    def _throttle(self, request, path):
        if not path.startswith(self.API_PREFIX):
            return None
        rules = system_config.get_section('security').get('rateLimiting') or {}
        if not rules.get('enabled'):
            return None
        max_requests = int(rules.get('maxRequests', 100))
        window = int(rules.get('windowMinutes', 15)) * 60
        ip = SecurityUtils.client_ip(request)
        if not RateLimitManager.hit(f"api:{ip}", max_requests, window):
            return None
        security_logger.warning("API_RATE_LIMITED ip=%s path=%s", ip, path)
        response = JsonResponse({
            'success': False,
            'error': 'Too many requests. Please slow down.',
            'code': 'RATE_LIMITED',
        }, status=429)
        response['Retry-After'] = str(window)
        return response

    @staticmethod
    def _finish(response, started):
        for header, value in SECURITY_HEADERS.items():
            response.setdefault(header, value)
        response['X-Response-Time'] = f"{(time.perf_counter() - started) * 1000:.1f}ms"
        return response

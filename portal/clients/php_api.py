"""
Client for the legacy PHP consular backend.

Every call goes through :meth:`PHPAPIClient.request`, which sends JSON
with the bearer token when one is held, retries connection failures and
5xx answers through ``urllib3.Retry`` and turns any non-2xx status or
``"success": false`` payload into :class:`PHPAPIError`.

Admin endpoints hang off ``client.admin``::

    client = PHPAPIClient()
    client.login('admin', 'officer@example.org', 'secret')
    page = client.admin.get_applications(page=2, status='submitted')
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests
from django.conf import settings
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger('portal.php_api')


class PHPAPIError(Exception):
    def __init__(self, status: int, code: str, message: str, details: Any = None):
        super().__init__(message)
        self.status = status
        self.code = code
        self.message = message
        self.details = details

    def __str__(self) -> str:
        return f"[{self.status} {self.code}] {self.message}"


@dataclass
class Pagination:
    page: int = 1
    limit: int = 10
    total: int = 0
    total_pages: int = 0

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'Pagination':
        data = data or {}
        return cls(
            page=int(data.get('page', 1)),
            limit=int(data.get('limit', 10)),
            total=int(data.get('total', 0)),
            total_pages=int(data.get('totalPages', data.get('total_pages', 0))),
        )


@dataclass
class TimeSlotRecord:
    slot_id: int
    start_time: str
    end_time: str
    duration: int
    is_active: bool
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> 'TimeSlotRecord':
        return cls(
            slot_id=int(data['slot_id']),
            start_time=data.get('start_time', ''),
            end_time=data.get('end_time', ''),
            duration=int(data.get('duration') or 0),
            # the backend sends 1/0
            is_active=bool(int(data.get('is_active') or 0)),
            created_at=data.get('created_at'),
            updated_at=data.get('updated_at'),
        )


@dataclass
class SlotSettingsRecord:
    slot_duration_minutes: int = 30
    max_appointments_per_slot: int = 1
    advance_booking_days: int = 30
    cancellation_hours: int = 24

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'SlotSettingsRecord':
        data = data or {}
        defaults = cls()
        return cls(**{
            name: int(data.get(name, getattr(defaults, name)))
            for name in ('slot_duration_minutes', 'max_appointments_per_slot',
                         'advance_booking_days', 'cancellation_hours')
        })


@dataclass
class ApplicationRecord:
    application_id: str
    service_id: str
    status: str
    id: Optional[int] = None
    user_id: Optional[str] = None
    service_title: str = ''
    applicant_info: Dict[str, Any] = field(default_factory=dict)
    priority: str = 'normal'
    submitted_at: Optional[str] = None
    last_updated: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> 'ApplicationRecord':
        info = data.get('applicant_info') or {}
        if isinstance(info, str):
            try:
                info = json.loads(info)
            except ValueError:
                logger.warning("Application %s has unreadable applicant_info", data.get('application_id'))
                info = {}
        return cls(
            id=data.get('id'),
            application_id=data['application_id'],
            user_id=data.get('user_id'),
            service_id=str(data.get('service_id') or ''),
            service_title=data.get('service_title') or '',
            applicant_info=info,
            status=data.get('status') or 'submitted',
            priority=data.get('priority') or 'normal',
            submitted_at=data.get('submitted_at'),
            last_updated=data.get('last_updated'),
        )


@dataclass
class AppointmentRecord:
    appointment_id: int
    appointment_date: str
    appointment_status: str
    slot: Optional[int] = None
    service_id: Optional[int] = None
    counter_name: str = ''
    first_name: str = ''
    last_name: str = ''
    passport_no: str = ''
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    _KNOWN = ('appointment_id', 'appointment_date', 'appointment_status', 'slot', 'service_id',
              'counter_name', 'first_name', 'last_name', 'passport_no', 'created_at', 'updated_at')

    @classmethod
    def from_dict(cls, data: dict) -> 'AppointmentRecord':
        return cls(
            appointment_id=int(data['appointment_id']),
            appointment_date=data.get('appointment_date', ''),
            appointment_status=data.get('appointment_status', ''),
            slot=data.get('slot'),
            service_id=data.get('service_id'),
            counter_name=data.get('counter_name') or '',
            first_name=data.get('first_name') or '',
            last_name=data.get('last_name') or '',
            passport_no=data.get('passport_no') or '',
            created_at=data.get('created_at'),
            updated_at=data.get('updated_at'),
            extra={k: v for k, v in data.items() if k not in cls._KNOWN},
        )


def build_session(retries: int, backoff_factor: float = 0.5) -> requests.Session:
    session = requests.Session()
    retry = Retry(
        total=retries,
        connect=retries,
        backoff_factor=backoff_factor,
        status_forcelist=[500, 502, 503, 504],
        # status retries only for idempotent verbs; connect errors retry any verb
        allowed_methods=Retry.DEFAULT_ALLOWED_METHODS,
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry, pool_connections=4, pool_maxsize=10)
    session.mount('http://', adapter)
    session.mount('https://', adapter)
    session.headers.update({'Accept': 'application/json'})
    return session


class PHPAPIClient:
    def __init__(self, base_url: Optional[str] = None, token: Optional[str] = None,
                 timeout: Optional[int] = None, retries: Optional[int] = None,
                 session: Optional[requests.Session] = None):
        self.base_url = (base_url or settings.PHP_API_URL).rstrip('/')
        self.token = token if token is not None else (settings.PHP_API_TOKEN or None)
        self.timeout = timeout or settings.PHP_API_TIMEOUT
        self.session = session or build_session(retries if retries is not None else settings.PHP_API_RETRIES)
        self.admin = AdminAPI(self)

    def _headers(self, json_body: bool) -> dict:
        headers = {}
        if json_body:
            headers['Content-Type'] = 'application/json'
        if self.token:
            headers['Authorization'] = f"Bearer {self.token}"
        return headers

    def request(self, method: str, endpoint: str, *, params: Optional[dict] = None,
                payload: Any = None, files: Optional[dict] = None, data: Optional[dict] = None) -> dict:
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        if params:
            params = {k: v for k, v in params.items() if v is not None and v != ''}
        logger.info("PHP API %s %s token=%s", method, url, bool(self.token))
        try:
            resp = self.session.request(
                method, url,
                params=params or None,
                data=json.dumps(payload) if payload is not None else data,
                files=files,
                headers=self._headers(payload is not None),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error("PHP API %s %s failed: %s", method, url, exc)
            raise PHPAPIError(0, 'NETWORK_ERROR', f"Could not reach backend: {exc}") from exc

        try:
            body = resp.json()
        except ValueError:
            raise PHPAPIError(resp.status_code, 'INVALID_RESPONSE', 'Backend returned a non-JSON response',
                              resp.text[:500])
        logger.debug("PHP API %s %s -> %s", method, url, resp.status_code)

        if not resp.ok or (isinstance(body, dict) and body.get('success') is False):
            err = body.get('error') if isinstance(body, dict) else None
            if isinstance(err, dict):
                code = str(err.get('code') or resp.status_code)
                message = err.get('message') or 'API request failed'
                details = err.get('details')
            else:
                code, message, details = str(resp.status_code), err or 'API request failed', None
            logger.warning("PHP API %s %s error %s: %s", method, url, code, message)
            raise PHPAPIError(resp.status_code, code, message, details)
        return body if isinstance(body, dict) else {'data': body}

    # Authentication
    def login(self, type: str, username: str, password: str) -> dict:
        body = self.request('POST', '/auth/login', payload={'type': type, 'username': username, 'password': password})
        if body.get('token'):
            self.token = body['token']
        return body

    def register(self, first_name: str, last_name: str, email: str, phone: str, password: str) -> dict:
        return self.request('POST', '/auth/register', payload={
            'first_name': first_name, 'last_name': last_name,
            'email': email, 'phone': phone, 'password': password,
        })

    def logout(self) -> None:
        self.token = None

    # Services
    def get_services(self) -> dict:
        return self.request('GET', '/services')

    def get_service(self, service_id: str) -> dict:
        return self.request('GET', f'/services/{service_id}')

    # Applications
    def submit_application(self, data: dict) -> dict:
        return self.request('POST', '/applications/submit', payload=data)

    def track_application(self, application_id: str) -> dict:
        return self.request('GET', f'/applications/track/{application_id}')

    def get_user_applications(self, user_id) -> dict:
        return self.request('GET', f'/applications/user/{user_id}')

    # Appointments
    def book_appointment(self, data: dict) -> dict:
        return self.request('POST', '/appointments/book', payload=data)

    def get_available_slots(self, date: str, service: str) -> dict:
        return self.request('GET', '/appointments/slots', params={'date': date, 'service': service})

    def upload_document(self, file, application_id: str, document_type: str) -> dict:
        """Upload an open binary file (or ``(name, fileobj)`` tuple) as multipart."""
        return self.request('POST', '/upload/secure', files={'file': file}, data={
            'application_id': application_id,
            'document_type': document_type,
        })


class AdminAPI:
    def __init__(self, client: PHPAPIClient):
        self._client = client

    def _call(self, method: str, endpoint: str, **kwargs) -> dict:
        return self._client.request(method, endpoint, **kwargs)

    def get_dashboard_stats(self) -> dict:
        return self._call('GET', '/admin/dashboard/stats').get('stats', {})

    def get_applications(self, page: int = 1, limit: int = 10, status: Optional[str] = None,
                         service: Optional[str] = None):
        body = self._call('GET', '/admin/applications', params={
            'page': page, 'limit': limit, 'status': status, 'service': service,
        })
        records = [ApplicationRecord.from_dict(row) for row in body.get('applications', [])]
        return records, Pagination.from_dict(body.get('pagination'))

    def update_application_status(self, application_id: str, status: str, notes: Optional[str] = None) -> dict:
        return self._call('PUT', f'/admin/applications/{application_id}/status',
                          payload={'status': status, 'notes': notes})

    def bulk_update_applications(self, application_ids: List[str], action: str, notes: Optional[str] = None) -> dict:
        return self._call('POST', '/admin/applications/bulk-update', payload={
            'application_ids': list(application_ids), 'action': action, 'notes': notes,
        })

    def send_notification(self, data: dict) -> dict:
        return self._call('POST', '/admin/notifications/send', payload=data)

    def get_users(self, role: Optional[str] = None, page: Optional[int] = None) -> dict:
        return self._call('GET', '/admin/users', params={'role': role, 'page': page})

    def create_user(self, user_data: dict) -> dict:
        return self._call('POST', '/admin/users', payload=user_data)

    def get_analytics(self, period: str, type: str, service: Optional[str] = None) -> dict:
        return self._call('GET', '/admin/analytics', params={'period': period, 'type': type, 'service': service})

    def get_appointments(self, page: int = 1, limit: int = 10, date: Optional[str] = None,
                         status: Optional[str] = None):
        body = self._call('GET', '/admin/appointments', params={
            'page': page, 'limit': limit, 'date': date, 'status': status,
        })
        records = [AppointmentRecord.from_dict(row) for row in body.get('appointments', [])]
        return records, Pagination.from_dict(body.get('pagination'))

    def get_appointment(self, appointment_id: int) -> AppointmentRecord:
        body = self._call('GET', f'/admin/appointments/{appointment_id}')
        return AppointmentRecord.from_dict(body['appointment'])

    def update_appointment_status(self, appointment_id: int, status: str) -> str:
        body = self._call('PUT', f'/admin/appointments/{appointment_id}/status', payload={'status': status})
        return body.get('message', '')

    def get_time_slots(self, page: int = 1, limit: int = 50):
        body = self._call('GET', '/admin/time-slots', params={'page': page, 'limit': limit})
        return (
            [TimeSlotRecord.from_dict(row) for row in body.get('slots', [])],
            SlotSettingsRecord.from_dict(body.get('settings')),
            Pagination.from_dict(body.get('pagination')),
        )

    def toggle_slot(self, slot_id: int) -> bool:
        body = self._call('POST', f'/admin/time-slots/{slot_id}/toggle')
        return bool(body.get('is_active'))

    def bulk_toggle_slots(self, slot_ids: List[int], is_active: bool) -> str:
        body = self._call('POST', '/admin/time-slots/bulk-toggle', payload={
            'slot_ids': list(slot_ids), 'is_active': is_active,
        })
        return body.get('message', '')

    def create_slot(self, start_time: str, end_time: str, duration: int) -> int:
        body = self._call('POST', '/admin/time-slots', payload={
            'start_time': start_time, 'end_time': end_time, 'duration': duration,
        })
        return int(body['slot_id'])

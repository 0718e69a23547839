"""
Application lifecycle: submission, status changes and bulk updates.

Every status change appends an :class:`ApplicationEvent` so the timeline
shown to applicants always ends with the current status.
"""
from __future__ import annotations

import logging
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from django.conf import settings
from django.db import transaction
from django.db.models import F, Max, Q
from django.db.models.functions import Coalesce
from django.utils import timezone

from portal.models import Application, ApplicationEvent, Service

from .audit import log_action
from .notifications import send_template
from .realtime import broadcast
from .security import InputValidator

logger = logging.getLogger(__name__)

VALID_STATUSES = [choice for choice, _ in Application.STATUS_CHOICES]
REQUIRED_FIELDS = ('serviceType', 'firstName', 'lastName', 'email')
APPLICANT_FIELDS = (
    'firstName', 'lastName', 'email', 'phone', 'dateOfBirth',
    'nationality', 'address', 'preferredNotification',
)


class ApplicationError(ValueError):
    pass


def serialize_event(event: ApplicationEvent) -> dict:
    return {
        'status': event.status,
        'timestamp': event.timestamp.isoformat() if event.timestamp else None,
        'notes': event.notes,
        'updatedBy': event.updated_by,
    }


def serialize_application(app: Application, *, timeline: bool = True) -> dict:
    data = {
        'applicationId': app.application_id,
        'serviceType': app.service_id,
        'serviceName': app.service.title if app.service else None,
        'status': app.status,
        'priority': app.priority,
        'applicantInfo': app.applicant_info,
        'processingNotes': app.processing_notes,
        'assignedOfficer': app.assigned_officer,
        'feeAmount': float(app.fee_amount or 0),
        'expectedCompletionDate': app.expected_completion.isoformat() if app.expected_completion else None,
        'submittedAt': app.submitted_at.isoformat() if app.submitted_at else None,
        'lastUpdated': app.last_updated.isoformat() if app.last_updated else None,
        'userId': app.user_id,
    }
    if timeline:
        data['timeline'] = [serialize_event(e) for e in app.timeline.all()]
    return data


def submit_application(data: Dict[str, Any], user=None) -> Application:
    """Validate and store a new application; raises ApplicationError on bad input."""
    data = InputValidator.sanitize_input(dict(data))
    if any(not data.get(f) for f in REQUIRED_FIELDS):
        raise ApplicationError('Missing required fields')
    if not InputValidator.is_valid_email(data['email']):
        raise ApplicationError('Invalid email format')
    service = Service.objects.filter(service_id=data['serviceType'], is_active=True).first()
    if service is None:
        raise ApplicationError('Unknown service type')

    applicant = {f: data.get(f) or '' for f in APPLICANT_FIELDS}
    applicant['preferredNotification'] = applicant['preferredNotification'] or 'email'
    now = timezone.now()
    with transaction.atomic():
        app = Application.objects.create(
            user=user if getattr(user, 'pk', None) else None,
            service=service,
            applicant_info=applicant,
            status=Application.STATUS_SUBMITTED,
            fee_amount=service.fee_amount or Decimal('0'),
            submitted_at=now,
            expected_completion=now + timedelta(days=settings.APPLICATION_COMPLETION_DAYS),
        )
        ApplicationEvent.objects.create(
            application=app, status=Application.STATUS_SUBMITTED,
            notes='Application submitted successfully', updated_by='SYSTEM',
        )
    logger.info("Application %s submitted for %s", app.application_id, service.service_id)

    send_template('Application Submitted', applicant['email'], {
        'applicantName': f"{applicant['firstName']} {applicant['lastName']}".strip(),
        'applicationId': app.application_id,
        'serviceType': service.title,
    })
    broadcast('application.created', {
        'applicationId': app.application_id,
        'serviceType': service.service_id,
        'status': app.status,
    })
    return app


def find_application(application_id: str) -> Optional[Application]:
    if not application_id:
        return None
    return (
        Application.objects.select_related('service')
        .prefetch_related('timeline')
        .filter(application_id=application_id)
        .first()
    )


def filter_applications(qs, *, status: Optional[str] = None, search: Optional[str] = None,
                        service: Optional[str] = None):
    if status and status != 'all':
        qs = qs.filter(status=status)
    if service and service != 'all':
        qs = qs.filter(service_id=service)
    if search:
        qs = qs.filter(
            Q(application_id__icontains=search)
            | Q(applicant_info__firstName__icontains=search)
            | Q(applicant_info__lastName__icontains=search)
            | Q(applicant_info__email__icontains=search)
        )
    return qs


@transaction.atomic
def change_status(app: Application, status: str, *, notes: str = '', officer=None,
                  assigned_officer: Optional[str] = None) -> Application:
    if status not in VALID_STATUSES:
        raise ApplicationError('Invalid status')
    old_status = app.status
    updated_by = getattr(officer, 'username', None) or 'SYSTEM'
    app.status = status
    if notes:
        app.processing_notes = notes
    if assigned_officer is not None:
        app.assigned_officer = assigned_officer
    app.save()
    ApplicationEvent.objects.create(
        application=app, status=status,
        notes=notes or f"Status updated to {status}", updated_by=updated_by,
    )
    log_action(user=officer, action='application_status', object_type='application',
               object_id=app.application_id, detail={'from': old_status, 'to': status})
    transaction.on_commit(lambda: broadcast('application.updated', {
        'applicationId': app.application_id, 'oldStatus': old_status, 'newStatus': status,
    }))
    return app


@transaction.atomic
def bulk_change_status(application_ids: Iterable[str], status: str, *, notes: str = '',
                       officer=None, assigned_officer: Optional[str] = None) -> List[Dict[str, Any]]:
    """Apply ``status`` to each id in one transaction.

    Unknown ids are reported and skipped; any other failure rolls the
    whole batch back.
    """
    if status not in VALID_STATUSES:
        raise ApplicationError('Invalid status')
    results: List[Dict[str, Any]] = []
    for application_id in application_ids:
        app = Application.objects.filter(application_id=application_id).first()
        if app is None:
            results.append({'applicationId': application_id, 'success': False, 'error': 'Application not found'})
            continue
        old_status = app.status
        change_status(app, status, notes=notes, officer=officer, assigned_officer=assigned_officer)
        results.append({
            'applicationId': application_id, 'success': True,
            'oldStatus': old_status, 'newStatus': status,
        })
    return results


def processing_days(qs) -> List[float]:
    """Days from submission to completion for the completed rows of ``qs``.

    Completion is the latest ``completed`` timeline entry; rows without one
    fall back to ``last_updated``.
    """
    rows = qs.filter(status=Application.STATUS_COMPLETED).annotate(
        completed_at=Coalesce(
            Max('timeline__timestamp', filter=Q(timeline__status=Application.STATUS_COMPLETED)),
            F('last_updated'),
        ),
    ).values_list('submitted_at', 'completed_at')
    return [(done - start).total_seconds() / 86400 for start, done in rows]

"""
Pull applications from the PHP back office API into the local database.

Rows are matched on ``application_id``.  A status change on the remote
side is recorded as a timeline entry so the local history stays
complete.
"""
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from portal.clients.php_api import PHPAPIClient, PHPAPIError
from portal.models import Application, ApplicationEvent, Service
from portal.services.applications import VALID_STATUSES


def _when(value):
    parsed = parse_datetime(value) if value else None
    if parsed is None:
        return timezone.now()
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed)
    return parsed


class Command(BaseCommand):
    help = "Synchronise applications from the PHP backend."

    def add_arguments(self, parser):
        parser.add_argument("--status", default=None, help="Only pull applications with this status.")
        parser.add_argument("--limit", type=int, default=50, help="Page size for the remote listing.")
        parser.add_argument("--max-pages", type=int, default=100)
        parser.add_argument("--username", default=None)
        parser.add_argument("--password", default=None)

    def handle(self, *args, **opts):
        client = PHPAPIClient()
        try:
            if opts["username"] and opts["password"]:
                client.login("admin", opts["username"], opts["password"])
            created = updated = skipped = 0
            page = 1
            while page <= opts["max_pages"]:
                records, pagination = client.admin.get_applications(page=page, limit=opts["limit"],
                                                                    status=opts["status"])
                for record in records:
                    outcome = self.store(record)
                    created += outcome == "created"
                    updated += outcome == "updated"
                    skipped += outcome == "skipped"
                if not records or page >= pagination.total_pages:
                    break
                page += 1
        except PHPAPIError as exc:
            raise CommandError(f"Backend sync failed: {exc}")
        self.stdout.write(self.style.SUCCESS(
            f"Synced applications: created={created} updated={updated} skipped={skipped}"
        ))

    @transaction.atomic
    def store(self, record):
        status = record.status if record.status in VALID_STATUSES else None
        if status is None:
            self.stderr.write(f"skip {record.application_id}: unknown status {record.status!r}")
            return "skipped"
        service = Service.objects.filter(service_id=record.service_id).first()
        app = Application.objects.select_for_update().filter(application_id=record.application_id).first()
        if app is None:
            app = Application.objects.create(
                application_id=record.application_id,
                service=service,
                applicant_info=record.applicant_info,
                status=status,
                priority=record.priority if record.priority in ('normal', 'high', 'urgent') else 'normal',
                fee_amount=service.fee_amount if service else 0,
                submitted_at=_when(record.submitted_at),
            )
            ApplicationEvent.objects.create(application=app, status=status,
                                            notes="Imported from backend", updated_by="SYNC")
            return "created"
        if app.status == status and app.applicant_info == record.applicant_info:
            return "skipped"
        if app.status != status:
            ApplicationEvent.objects.create(application=app, status=status,
                                            notes=f"Status synchronised from backend (was {app.status})",
                                            updated_by="SYNC")
        app.status = status
        app.applicant_info = record.applicant_info or app.applicant_info
        app.save(update_fields=["status", "applicant_info", "last_updated"])
        return "updated"

"""
Seed the catalogue and booking configuration for a fresh installation.

Existing rows are left alone unless ``--reset`` is given, so the command
can run on every deploy.
"""
from datetime import time, timedelta
from decimal import Decimal

from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from portal.models import Banner, NotificationTemplate, Service, SlotSettings, TimeSlot
from portal.services.notifications import extract_variables

SERVICES = [
    {
        "service_id": "passport-renewal-expiry",
        "title": "Passport Renewal - Expiry",
        "description": "Renewal of passport due to expiry",
        "category": "passport",
        "processing_time": "15-20 working days",
        "fee": "R2,500",
        "fee_amount": Decimal("2500"),
        "requirements": ["Old passport", "Passport application form", "Photographs", "Proof of residence"],
    },
    {
        "service_id": "visa-application",
        "title": "Visa Application",
        "description": "Apply for various types of visas",
        "category": "visa",
        "processing_time": "10-15 working days",
        "fee": "R1,800",
        "fee_amount": Decimal("1800"),
        "requirements": ["Completed application form", "Passport", "Photographs", "Supporting documents"],
    },
    {
        "service_id": "oci-application",
        "title": "OCI Card Application",
        "description": "Overseas Citizen of India card application",
        "category": "oci",
        "processing_time": "6-8 weeks",
        "fee": "R3,200",
        "fee_amount": Decimal("3200"),
        "requirements": ["Application form", "Indian passport copy", "Current passport", "Birth certificate"],
        "slot_times": ["09:00", "10:00", "11:00", "14:00"],
        "max_daily": 8,
    },
    {
        "service_id": "document-attestation",
        "title": "Document Attestation",
        "description": "Attestation of educational and commercial documents",
        "category": "attestation",
        "processing_time": "3-5 working days",
        "fee": "R450",
        "fee_amount": Decimal("450"),
        "requirements": ["Original documents", "Copies of documents", "Passport copy"],
        "slot_duration": 15,
    },
]

TEMPLATES = [
    ("Application Submitted", "email", "Application Status Updates", "Application Submitted Successfully",
     "Dear {{applicantName}}, your application {{applicationId}} has been submitted successfully."),
    ("Application Approved", "email", "Application Status Updates", "Application Approved",
     "Dear {{applicantName}}, your application {{applicationId}} has been approved and is ready for collection."),
    ("Appointment Reminder", "sms", "Appointment Reminders", "",
     "Reminder: You have an appointment on {{appointmentDate}} at {{appointmentTime}} for {{serviceType}}."),
]

BANNERS = [
    ("Important Notice", "Updated Passport Application Process",
     "New requirements for passport applications are in effect. Please review the updated documentation.",
     "warning", ["home", "apply"]),
    ("Holiday Schedule", "Consulate Closure Dates",
     "The consulate is closed on public holidays. Plan your visits accordingly.",
     "info", ["home", "appointment"]),
    ("New Service Available", "Online Document Verification",
     "Submit your documents digitally for faster processing.",
     "success", ["home", "services"]),
]


class Command(BaseCommand):
    help = "Seed services, notification templates, banners, time slots and slot settings."

    def add_arguments(self, parser):
        parser.add_argument("--reset", action="store_true", help="Overwrite existing seed rows.")

    @transaction.atomic
    def handle(self, *args, **options):
        reset = options["reset"]
        counts = {
            "services": self.seed_services(reset),
            "templates": self.seed_templates(reset),
            "banners": self.seed_banners(reset),
            "slots": self.seed_slots(),
        }
        SlotSettings.load()
        summary = ", ".join(f"{name}={n}" for name, n in counts.items())
        self.stdout.write(self.style.SUCCESS(f"Seeded {summary}"))

    def seed_services(self, reset):
        created = 0
        for row in SERVICES:
            data = dict(row)
            service_id = data.pop("service_id")
            if reset:
                _, was_created = Service.objects.update_or_create(service_id=service_id, defaults=data)
            else:
                _, was_created = Service.objects.get_or_create(service_id=service_id, defaults=data)
            created += int(was_created)
        return created

    def seed_templates(self, reset):
        created = 0
        for name, kind, category, subject, content in TEMPLATES:
            defaults = {"category": category, "subject": subject, "content": content,
                        "variables": extract_variables(content), "is_active": True}
            if reset:
                _, was_created = NotificationTemplate.objects.update_or_create(name=name, type=kind, defaults=defaults)
            else:
                _, was_created = NotificationTemplate.objects.get_or_create(name=name, type=kind, defaults=defaults)
            created += int(was_created)
        return created

    def seed_banners(self, reset):
        now = timezone.now()
        created = 0
        for priority, (title, subtitle, content, kind, pages) in enumerate(BANNERS, start=1):
            defaults = {"subtitle": subtitle, "content": content, "type": kind, "priority": priority,
                        "start_date": now, "end_date": now + timedelta(days=90),
                        "target_pages": pages, "is_active": True}
            if reset:
                _, was_created = Banner.objects.update_or_create(title=title, defaults=defaults)
            else:
                _, was_created = Banner.objects.get_or_create(title=title, defaults=defaults)
            created += int(was_created)
        return created

    def seed_slots(self):
        # 09:00-16:30 in half hours, lunch break 13:00-14:00
        created = 0
        for hour in range(9, 17):
            if hour == 13:
                continue
            for minute in (0, 30):
                start = time(hour, minute)
                end = time(hour, 30) if minute == 0 else time(hour + 1, 0)
                _, was_created = TimeSlot.objects.get_or_create(
                    start_time=start, defaults={"end_time": end, "duration": 30},
                )
                created += int(was_created)
        return created

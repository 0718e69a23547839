"""
Database models for the consular services portal.

These models capture the records the portal manages: staff and
applicant accounts, consular services, submitted applications and
their timelines, appointment slots and bookings, homepage banners,
notification templates and the log of sent notifications, and the
singleton system configuration.  Field names mirror the JSON shapes
returned to the front end where practical so that serialisation stays
a thin mapping.
"""
from __future__ import annotations

import secrets
import string
import time

from django.contrib.auth.models import AbstractUser
from django.db import models


def _millis() -> int:
    return int(time.time() * 1000)


def _random_suffix(length: int = 5) -> str:
    alphabet = string.ascii_uppercase + string.digits
    return ''.join(secrets.choice(alphabet) for _ in range(length))


def generate_application_id() -> str:
    """Return an id such as ``ICS1737110400000K3Z9Q``."""
    return f"ICS{_millis()}{_random_suffix()}"


def generate_appointment_reference() -> str:
    return f"APT{_millis()}{_random_suffix(3)}"


def generate_notification_id() -> str:
    return f"NOT{_millis()}{_random_suffix()}"


class User(AbstractUser):
    """Custom user model with a role, account status and lockout counter.

    Roles mirror the front-end roles: 'applicant' for citizens using the
    public site, 'admin' for consular officers and 'super_admin' for
    staff allowed to change system configuration.
    """
    ROLE_APPLICANT = 'applicant'
    ROLE_ADMIN = 'admin'
    ROLE_SUPER_ADMIN = 'super_admin'
    ROLE_CHOICES = [
        (ROLE_APPLICANT, 'Applicant'),
        (ROLE_ADMIN, 'Administrator'),
        (ROLE_SUPER_ADMIN, 'Super Administrator'),
    ]
    STATUS_CHOICES = [
        ('active', 'Active'),
        ('inactive', 'Inactive'),
        ('suspended', 'Suspended'),
    ]
    role = models.CharField(max_length=16, choices=ROLE_CHOICES, default=ROLE_APPLICANT, db_index=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default='active', db_index=True)
    phone = models.CharField(max_length=32, blank=True)
    is_verified = models.BooleanField(default=False)
    failed_attempts = models.PositiveIntegerField(default=0)
    two_factor_enabled = models.BooleanField(default=False)
    otp_secret = models.CharField(max_length=64, blank=True)
    profile = models.JSONField(default=dict, blank=True)
    registered_at = models.DateTimeField(auto_now_add=True)

    @property
    def is_admin_role(self) -> bool:
        return self.role in (self.ROLE_ADMIN, self.ROLE_SUPER_ADMIN)

    def __str__(self) -> str:
        return f"{self.username} ({self.role})"


class Service(models.Model):
    """A consular service that can be applied for or booked."""
    CATEGORY_CHOICES = [
        ('passport', 'Passport'),
        ('visa', 'Visa'),
        ('oci', 'OCI'),
        ('attestation', 'Attestation'),
        ('birth-death', 'Birth/Death'),
        ('misc', 'Miscellaneous'),
    ]
    service_id = models.SlugField(max_length=80, primary_key=True)
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    category = models.CharField(max_length=20, choices=CATEGORY_CHOICES, default='misc', db_index=True)
    is_active = models.BooleanField(default=True, db_index=True)
    processing_time = models.CharField(max_length=100, blank=True)
    fee = models.CharField(max_length=50, blank=True)
    fee_amount = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    requirements = models.JSONField(default=list, blank=True)
    # Start times ("HH:MM") this service may be booked at; empty means any active slot
    slot_times = models.JSONField(default=list, blank=True)
    slot_duration = models.PositiveIntegerField(default=30, help_text="Minutes per appointment")
    max_daily = models.PositiveIntegerField(default=20, help_text="Maximum appointments per day")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.title} ({self.service_id})"


class Application(models.Model):
    """A citizen-submitted service request tracked by status."""
    STATUS_SUBMITTED = 'submitted'
    STATUS_IN_PROGRESS = 'in-progress'
    STATUS_READY = 'ready-for-collection'
    STATUS_COMPLETED = 'completed'
    STATUS_REJECTED = 'rejected'
    STATUS_CHOICES = [
        (STATUS_SUBMITTED, 'Submitted'),
        (STATUS_IN_PROGRESS, 'In progress'),
        (STATUS_READY, 'Ready for collection'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_REJECTED, 'Rejected'),
    ]
    PRIORITY_CHOICES = [
        ('normal', 'Normal'),
        ('high', 'High'),
        ('urgent', 'Urgent'),
    ]
    application_id = models.CharField(max_length=40, unique=True, default=generate_application_id)
    user = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='applications')
    service = models.ForeignKey(Service, null=True, on_delete=models.SET_NULL, related_name='applications')
    applicant_info = models.JSONField(default=dict)
    status = models.CharField(max_length=32, choices=STATUS_CHOICES, default=STATUS_SUBMITTED, db_index=True)
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default='normal')
    processing_notes = models.TextField(blank=True)
    assigned_officer = models.CharField(max_length=150, blank=True)
    fee_amount = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    expected_completion = models.DateTimeField(null=True, blank=True)
    submitted_at = models.DateTimeField(db_index=True)
    last_updated = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['status', 'submitted_at'], name='portal_appl_status_7c1f0e_idx'),
        ]

    def __str__(self) -> str:
        return f"{self.application_id} ({self.status})"


class ApplicationEvent(models.Model):
    """One entry in an application's status timeline."""
    application = models.ForeignKey(Application, on_delete=models.CASCADE, related_name='timeline')
    status = models.CharField(max_length=32)
    notes = models.TextField(blank=True)
    updated_by = models.CharField(max_length=150, default='SYSTEM')
    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['timestamp', 'id']

    def __str__(self) -> str:
        return f"{self.application_id}: {self.status}"  # type: ignore[attr-defined]


class TimeSlot(models.Model):
    """A bookable start time at the service counters."""
    start_time = models.TimeField(unique=True)
    end_time = models.TimeField()
    duration = models.PositiveIntegerField(default=30)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['start_time']

    def __str__(self) -> str:
        return f"{self.start_time:%H:%M}-{self.end_time:%H:%M}"


class SlotSettings(models.Model):
    """Singleton holding booking rules."""
    slot_duration_minutes = models.PositiveIntegerField(default=30)
    max_appointments_per_slot = models.PositiveIntegerField(default=1)
    advance_booking_days = models.PositiveIntegerField(default=30)
    cancellation_hours = models.PositiveIntegerField(default=24)

    @classmethod
    def load(cls) -> 'SlotSettings':
        obj, _ = cls.objects.get_or_create(pk=1)
        return obj

    def __str__(self) -> str:
        return "Slot settings"


class DaySchedule(models.Model):
    """Opening hours or a holiday for one calendar date."""
    date = models.DateField(unique=True)
    opening_time = models.TimeField(null=True, blank=True)
    closing_time = models.TimeField(null=True, blank=True)
    max_appointments = models.PositiveIntegerField(default=50)
    is_holiday = models.BooleanField(default=False)
    holiday_reason = models.CharField(max_length=255, blank=True)
    special_notes = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['date']

    def __str__(self) -> str:
        return f"{self.date:%Y-%m-%d}{' (holiday)' if self.is_holiday else ''}"


class Appointment(models.Model):
    STATUS_BOOKED = 'booked'
    STATUS_CONFIRMED = 'confirmed'
    STATUS_CANCELLED = 'cancelled'
    STATUS_COMPLETED = 'completed'
    STATUS_NO_SHOW = 'no-show'
    STATUS_CHOICES = [
        (STATUS_BOOKED, 'Booked'),
        (STATUS_CONFIRMED, 'Confirmed'),
        (STATUS_CANCELLED, 'Cancelled'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_NO_SHOW, 'No show'),
    ]
    reference = models.CharField(max_length=40, unique=True, default=generate_appointment_reference)
    user = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='appointments')
    service = models.ForeignKey(Service, on_delete=models.CASCADE, related_name='appointments')
    appointment_date = models.DateField(db_index=True)
    start_time = models.TimeField()
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_BOOKED, db_index=True)
    name = models.CharField(max_length=255)
    email = models.EmailField()
    phone = models.CharField(max_length=32, blank=True)
    passport_no = models.CharField(max_length=32, blank=True)
    purpose = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['appointment_date', 'start_time'], name='portal_appo_appoint_5d2b8a_idx'),
            models.Index(fields=['service', 'appointment_date'], name='portal_appo_service_0e9c41_idx'),
        ]

    def __str__(self) -> str:
        return f"{self.reference} {self.appointment_date:%Y-%m-%d} {self.start_time:%H:%M}"


class Banner(models.Model):
    """Homepage/site notice shown on selected pages within a date window."""
    TYPE_CHOICES = [
        ('info', 'Info'),
        ('warning', 'Warning'),
        ('success', 'Success'),
        ('error', 'Error'),
    ]
    title = models.CharField(max_length=255)
    subtitle = models.CharField(max_length=255, blank=True)
    content = models.TextField(blank=True)
    type = models.CharField(max_length=16, choices=TYPE_CHOICES, default='info')
    is_active = models.BooleanField(default=True)
    priority = models.PositiveIntegerField(default=1)
    start_date = models.DateTimeField(null=True, blank=True)
    end_date = models.DateTimeField(null=True, blank=True)
    target_pages = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['priority', 'id']

    def __str__(self) -> str:
        return self.title[:30]


class NotificationTemplate(models.Model):
    TYPE_CHOICES = [
        ('email', 'Email'),
        ('sms', 'SMS'),
        ('whatsapp', 'WhatsApp'),
        ('push', 'Push'),
    ]
    name = models.CharField(max_length=255)
    type = models.CharField(max_length=16, choices=TYPE_CHOICES)
    category = models.CharField(max_length=100, default='General')
    subject = models.CharField(max_length=255, blank=True)
    content = models.TextField()
    variables = models.JSONField(default=list, blank=True)
    is_active = models.BooleanField(default=True)
    usage_count = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.name} ({self.type})"


class Notification(models.Model):
    """One delivery attempt of a notification to a single recipient."""
    STATUS_CHOICES = [
        ('sent', 'Sent'),
        ('queued', 'Queued'),
        ('failed', 'Failed'),
    ]
    notification_id = models.CharField(max_length=40, db_index=True)
    channel = models.CharField(max_length=16, choices=NotificationTemplate.TYPE_CHOICES, db_index=True)
    recipient = models.CharField(max_length=255)
    subject = models.CharField(max_length=255, blank=True)
    content = models.TextField()
    template = models.ForeignKey(
        NotificationTemplate, null=True, blank=True, on_delete=models.SET_NULL, related_name='notifications'
    )
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default='queued')
    error = models.CharField(max_length=255, blank=True)
    sent_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['channel', 'created_at'], name='portal_noti_channel_3a6f2d_idx'),
        ]

    def __str__(self) -> str:
        return f"{self.notification_id} -> {self.recipient} ({self.status})"


class SystemConfig(models.Model):
    """Singleton configuration document edited from the back office."""
    data = models.JSONField(default=dict)
    updated_by = models.CharField(max_length=255, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"System config @ {self.updated_at:%F %T}"


class Deployment(models.Model):
    STATUS_CHOICES = [
        ('initiated', 'Initiated'),
        ('success', 'Success'),
        ('failed', 'Failed'),
    ]
    version = models.CharField(max_length=32)
    environment = models.CharField(max_length=32, default='production')
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default='initiated')
    notes = models.TextField(blank=True)
    deployed_by = models.CharField(max_length=255, blank=True)
    deployed_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-deployed_at', '-id']

    def __str__(self) -> str:
        return f"{self.version} ({self.environment}, {self.status})"


class AdminSession(models.Model):
    """Server-side record of a back office login."""
    session_id = models.CharField(max_length=64, unique=True)
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='admin_sessions')
    ip = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.CharField(max_length=512, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    last_seen = models.DateTimeField(auto_now=True)
    expires_at = models.DateTimeField()
    revoked = models.BooleanField(default=False)

    def __str__(self) -> str:
        return f"session {self.session_id[:8]}... user={self.user_id}"  # type: ignore[attr-defined]


class AuditEvent(models.Model):
    SEVERITY_CHOICES = [
        ('low', 'low'),
        ('medium', 'medium'),
        ('high', 'high'),
        ('critical', 'critical'),
    ]
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    action = models.CharField(max_length=64)
    object_type = models.CharField(max_length=64, blank=True, null=True)
    object_id = models.CharField(max_length=64, blank=True, null=True)
    detail = models.JSONField(default=dict, blank=True)
    ip = models.GenericIPAddressField(blank=True, null=True)
    severity = models.CharField(max_length=16, choices=SEVERITY_CHOICES, default='low')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['action', 'created_at'], name='portal_audi_action_9b4e17_idx'),
            models.Index(fields=['object_type', 'object_id', 'created_at'], name='portal_audi_object__c82a55_idx'),
        ]

    def __str__(self) -> str:
        return f"{self.action}:{self.user_id}@{self.created_at:%F %T}"  # type: ignore[attr-defined]

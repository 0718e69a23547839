"""
Django admin registrations for the portal models.

Available at ``/django-admin/`` for superusers; the back office API is
the primary interface, this is for inspection and manual fixes.
"""
from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import (
    AdminSession,
    Application,
    ApplicationEvent,
    Appointment,
    AuditEvent,
    Banner,
    DaySchedule,
    Deployment,
    Notification,
    NotificationTemplate,
    Service,
    SlotSettings,
    SystemConfig,
    TimeSlot,
    User,
)


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ('username', 'email', 'role', 'status', 'is_verified', 'two_factor_enabled', 'last_login')
    list_filter = ('role', 'status', 'is_verified')
    search_fields = ('username', 'email', 'first_name', 'last_name', 'phone')
    fieldsets = BaseUserAdmin.fieldsets + (
        ('Portal', {'fields': ('role', 'status', 'phone', 'is_verified', 'failed_attempts',
                               'two_factor_enabled', 'profile')}),
    )


@admin.register(Service)
class ServiceAdmin(admin.ModelAdmin):
    list_display = ('service_id', 'title', 'category', 'fee', 'max_daily', 'is_active')
    list_filter = ('category', 'is_active')
    search_fields = ('service_id', 'title')


class ApplicationEventInline(admin.TabularInline):
    model = ApplicationEvent
    extra = 0
    readonly_fields = ('status', 'notes', 'updated_by', 'timestamp')


@admin.register(Application)
class ApplicationAdmin(admin.ModelAdmin):
    list_display = ('application_id', 'service', 'status', 'priority', 'assigned_officer', 'submitted_at')
    list_filter = ('status', 'priority', 'service')
    search_fields = ('application_id', 'applicant_info')
    inlines = [ApplicationEventInline]


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ('reference', 'service', 'appointment_date', 'start_time', 'name', 'status')
    list_filter = ('status', 'service', 'appointment_date')
    search_fields = ('reference', 'name', 'email', 'passport_no')


@admin.register(TimeSlot)
class TimeSlotAdmin(admin.ModelAdmin):
    list_display = ('start_time', 'end_time', 'duration', 'is_active')
    list_filter = ('is_active',)


@admin.register(DaySchedule)
class DayScheduleAdmin(admin.ModelAdmin):
    list_display = ('date', 'opening_time', 'closing_time', 'max_appointments', 'is_holiday')
    list_filter = ('is_holiday',)


@admin.register(Banner)
class BannerAdmin(admin.ModelAdmin):
    list_display = ('title', 'type', 'priority', 'is_active', 'start_date', 'end_date')
    list_filter = ('type', 'is_active')
    search_fields = ('title', 'subtitle')


@admin.register(NotificationTemplate)
class NotificationTemplateAdmin(admin.ModelAdmin):
    list_display = ('name', 'type', 'category', 'is_active', 'usage_count')
    list_filter = ('type', 'category', 'is_active')
    search_fields = ('name', 'subject')


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ('notification_id', 'channel', 'recipient', 'status', 'created_at')
    list_filter = ('channel', 'status')
    search_fields = ('notification_id', 'recipient')


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ('action', 'user', 'object_type', 'object_id', 'severity', 'ip', 'created_at')
    list_filter = ('severity', 'object_type')
    search_fields = ('action', 'object_id', 'user__username')


@admin.register(AdminSession)
class AdminSessionAdmin(admin.ModelAdmin):
    list_display = ('user', 'ip', 'created_at', 'expires_at', 'revoked')
    list_filter = ('revoked',)


admin.site.register(SlotSettings)
admin.site.register(SystemConfig)
admin.site.register(Deployment)

"""
URL mappings for the consular portal API.

Paths have no trailing slash.  Fixed appointment paths are listed
before the ``<reference>`` catch-all so they are not swallowed by it.
"""
from django.urls import include, path

from .auth_views import jwt_logout_view, jwt_refresh_view, login_view
from .views import health
from .views.admin_applications import admin_applications, bulk_update_applications
from .views.admin_calendar import (
    admin_appointment_detail,
    admin_appointments,
    bulk_toggle_time_slots,
    calendar_schedule,
    slot_settings,
    time_slots,
    toggle_time_slot,
)
from .views.admin_content import admin_banners, admin_services, notification_templates, send_notification
from .views.admin_system import (
    analytics_view,
    dashboard_stats,
    deploy_view,
    system_alerts,
    system_config_view,
    system_status_view,
)
from .views.admin_users import admin_users, admin_users_bulk
from .views.appointments import (
    appointment_detail,
    available_dates,
    available_slots,
    book_appointment,
    cancel_appointment,
)
from .views.public import application_submit, list_services, public_banners, service_detail


urlpatterns = [
    path('', include('django_prometheus.urls')),
    path('healthz', health.healthz),

    # Authentication
    path('api/auth/login', login_view),
    path('api/auth/refresh', jwt_refresh_view),
    path('api/auth/logout', jwt_logout_view),

    # Public site
    path('api/services', list_services),
    path('api/services/<str:service_id>', service_detail),
    path('api/banners', public_banners),
    path('api/applications/submit', application_submit),

    # Appointments
    path('api/appointments/slots', available_slots),
    path('api/appointments/dates', available_dates),
    path('api/appointments/book', book_appointment),
    path('api/appointments/<str:reference>', appointment_detail),
    path('api/appointments/<str:reference>/cancel', cancel_appointment),

    # Admin: dashboard and applications
    path('api/admin/dashboard/stats', dashboard_stats),
    path('api/admin/applications', admin_applications),
    path('api/admin/applications/bulk-update', bulk_update_applications),

    # Admin: users
    path('api/admin/users', admin_users),
    path('api/admin/users/bulk', admin_users_bulk),

    # Admin: content and notifications
    path('api/admin/services', admin_services),
    path('api/admin/content/banners', admin_banners),
    path('api/admin/notifications/templates', notification_templates),
    path('api/admin/notifications/send', send_notification),

    # Admin: system
    path('api/admin/system/config', system_config_view),
    path('api/admin/system/status', system_status_view),
    path('api/admin/system/alerts', system_alerts),
    path('api/admin/analytics', analytics_view),
    path('api/admin/deploy', deploy_view),

    # Admin: calendar, appointments and time slots
    path('api/admin/calendar/schedule', calendar_schedule),
    path('api/admin/appointments', admin_appointments),
    path('api/admin/appointments/<int:pk>', admin_appointment_detail),
    path('api/admin/time-slots', time_slots),
    path('api/admin/time-slots/settings', slot_settings),
    path('api/admin/time-slots/bulk-toggle', bulk_toggle_time_slots),
    path('api/admin/time-slots/<int:pk>/toggle', toggle_time_slot),
]

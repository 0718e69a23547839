"""
Root URL table.

The portal app owns every ``/api/`` route plus ``/healthz`` and
``/metrics``.  The Django admin lives under ``/django-admin/`` so it does
not collide with the back office API under ``/api/admin/``.
"""
from django.contrib import admin
from django.urls import include, path
from drf_yasg import openapi
from drf_yasg.views import get_schema_view
from rest_framework.permissions import AllowAny

api_info = openapi.Info(
    title="Consular Services Portal API",
    default_version="v1",
    description="Public service site and back office endpoints of the consular portal.",
)

schema_view = get_schema_view(api_info, public=True, permission_classes=(AllowAny,))

urlpatterns = [
    path("", include("portal.routers")),
    path("django-admin/", admin.site.urls),
    path("swagger/", schema_view.with_ui("swagger", cache_timeout=0), name="schema-swagger-ui"),
    path("redoc/", schema_view.with_ui("redoc", cache_timeout=0), name="schema-redoc"),
]

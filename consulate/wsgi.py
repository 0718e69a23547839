"""WSGI callable for servers that do not need the websocket endpoint."""
import os

from django.core.wsgi import get_wsgi_application  # type: ignore

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'consulate.settings')

application = get_wsgi_application()

"""
ASGI entrypoint: Django for HTTP, Channels for ``ws/admin/updates/``.

``django.setup()`` has to run before the consumer module is imported
because it pulls in models and simplejwt.
"""
import os

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "consulate.settings")

import django  # noqa: E402

django.setup()

from channels.auth import AuthMiddlewareStack  # noqa: E402
from channels.routing import ProtocolTypeRouter, URLRouter  # noqa: E402
from django.core.asgi import get_asgi_application  # noqa: E402
from django.urls import path  # noqa: E402

from portal.realtime.consumers import AdminUpdatesConsumer  # noqa: E402

application = ProtocolTypeRouter({
    "http": get_asgi_application(),
    "websocket": AuthMiddlewareStack(URLRouter([
        path("ws/admin/updates/", AdminUpdatesConsumer.as_asgi()),
    ])),
})

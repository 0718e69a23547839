import json
from urllib.parse import parse_qs

from asgiref.sync import sync_to_async
from channels.generic.websocket import AsyncWebsocketConsumer
from rest_framework.exceptions import AuthenticationFailed
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import TokenError

from portal.permissions import ADMIN_ROLES
from portal.services.realtime import ADMIN_GROUP


def resolve_user(query_string: bytes, session_user=None):
    """Return the admin user for a websocket handshake, or None.

    The token comes from ``?token=``; without one the Django session user
    (set by ``AuthMiddlewareStack``) is used.
    """
    params = parse_qs(query_string.decode() if query_string else '')
    token = (params.get('token') or [''])[0]
    user = None
    if token:
        auth = JWTAuthentication()
        try:
            user = auth.get_user(auth.get_validated_token(token.encode()))
        except (AuthenticationFailed, TokenError):
            # also raised for inactive or deleted users
            return None
    elif session_user is not None and getattr(session_user, 'is_authenticated', False):
        user = session_user
    if user is None or getattr(user, 'role', None) not in ADMIN_ROLES:
        return None
    return user


class AdminUpdatesConsumer(AsyncWebsocketConsumer):
    group_name = ADMIN_GROUP

    async def connect(self):
        user = await sync_to_async(resolve_user)(self.scope.get('query_string', b''), self.scope.get('user'))
        if user is None:
            await self.close(code=4003)
            return
        self.user = user
        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept()
        await self.send(json.dumps({"type": "connected", "userId": user.id, "role": user.role}))

    async def disconnect(self, close_code):
        if hasattr(self, 'user'):
            await self.channel_layer.group_discard(self.group_name, self.channel_name)

    async def receive(self, text_data=None, bytes_data=None):
        if not text_data:
            return
        try:
            data = json.loads(text_data)
        except ValueError:
            await self.send(json.dumps({"type": "error", "code": 4000, "message": "invalid_json"}))
            return
        if isinstance(data, dict) and data.get('type') == 'ping':
            await self.send(json.dumps({"type": "pong"}))

    async def admin_update(self, event):
        await self.send(json.dumps({"type": event.get("event"), "payload": event.get("payload", {})}))

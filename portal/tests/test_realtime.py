import pytest
from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.contrib.auth.models import AnonymousUser
from rest_framework_simplejwt.tokens import RefreshToken

from portal.realtime.consumers import resolve_user
from portal.services.realtime import ADMIN_GROUP, broadcast

pytestmark = pytest.mark.django_db


def _query(user):
    return f'token={RefreshToken.for_user(user).access_token}'.encode()


def test_admin_token_accepted(admin_user):
    assert resolve_user(_query(admin_user)) == admin_user


def test_applicant_token_rejected(applicant):
    assert resolve_user(_query(applicant)) is None


def test_garbage_token_rejected(admin_user):
    assert resolve_user(b'token=not-a-jwt', session_user=admin_user) is None


def test_deactivated_admin_token_rejected(admin_user):
    query = _query(admin_user)
    admin_user.is_active = False
    admin_user.save()
    assert resolve_user(query) is None


def test_deleted_admin_token_rejected(admin_user):
    query = _query(admin_user)
    admin_user.delete()
    assert resolve_user(query) is None


def test_session_user_fallback(admin_user):
    assert resolve_user(b'', session_user=admin_user) == admin_user
    assert resolve_user(b'', session_user=AnonymousUser()) is None
    assert resolve_user(b'') is None


def test_broadcast_reaches_admin_group():
    layer = get_channel_layer()
    channel = async_to_sync(layer.new_channel)()
    async_to_sync(layer.group_add)(ADMIN_GROUP, channel)
    assert broadcast('application.updated', {'applicationId': 'APP-1'})
    message = async_to_sync(layer.receive)(channel)
    assert message['type'] == 'admin.update'
    assert message['event'] == 'application.updated'
    assert message['payload'] == {'applicationId': 'APP-1'}

"""Push back office update events to connected admin websockets."""
from __future__ import annotations

import logging
from typing import Any, Dict

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

logger = logging.getLogger(__name__)

ADMIN_GROUP = 'admin-updates'


def broadcast(event: str, payload: Dict[str, Any]) -> bool:
    """Send ``event`` to the admin group; a missing or failing layer only logs."""
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return False
    try:
        async_to_sync(channel_layer.group_send)(
            ADMIN_GROUP, {"type": "admin.update", "event": event, "payload": payload}
        )
    except Exception:
        logger.warning("Broadcast of %s failed", event, exc_info=True)
        return False
    return True

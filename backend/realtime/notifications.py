"""
Notification helpers for pushing ride events to connected clients.

Every ride has one channel-layer group, ``ride_<id>``. Chat subscribers join it,
and the service layer calls these helpers (after the transaction commits)
whenever membership, ride status or the chat log changes.

Failures are logged and never propagate: a ride update must not fail because
the realtime layer is unavailable.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

logger = logging.getLogger(__name__)


def ride_group_name(ride_id: int) -> str:
    return f"ride_{ride_id}"


def notify_ride_group(ride_id: int, event_type: str, **payload: Any) -> bool:
    """Send ``event_type`` to everyone subscribed to the ride. Returns True if sent."""
    try:
        channel_layer = get_channel_layer()
        if channel_layer is None:
            logger.warning("No channel layer available, dropping %s for ride %s", event_type, ride_id)
            return False
        event: Dict[str, Any] = {"type": event_type, "ride_id": ride_id, **payload}
        async_to_sync(channel_layer.group_send)(ride_group_name(ride_id), event)
        return True
    except Exception:
        logger.exception("Failed to notify ride group for ride %s", ride_id)
        return False


def notify_membership_changed(ride, action: str, user_id: int) -> bool:
    """Push the fresh member list after a join or leave."""
    from rides.serializers import RideSerializer

    return notify_ride_group(
        ride.id,
        "membership_changed",
        action=action,
        user_id=user_id,
        ride_data=RideSerializer(ride).data,
    )


def notify_ride_cancelled(ride, message: str = "The host cancelled this ride.") -> bool:
    """Tell subscribers the ride is gone; chat consumers close on this event."""
    return notify_ride_group(ride.id, "ride_cancelled", message=message)


def broadcast_chat_message(message) -> bool:
    """Fan a newly stored chat message out to the ride's subscribers."""
    from chat.serializers import ChatMessageSerializer

    return notify_ride_group(
        message.ride_id,
        "chat_message",
        message=ChatMessageSerializer(message).data,
    )

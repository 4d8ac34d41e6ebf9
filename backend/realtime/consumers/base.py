"""Shared plumbing for authenticated JSON WebSocket consumers."""

import logging
from typing import Any, Dict, Set

from channels.generic.websocket import AsyncJsonWebsocketConsumer

from services.exceptions import NotFoundError, RideServiceError

logger = logging.getLogger(__name__)

# Application close codes (4000-4999 are free for app use)
CLOSE_UNAUTHENTICATED = 4401
CLOSE_FORBIDDEN = 4403
CLOSE_NOT_FOUND = 4404


class BaseConsumer(AsyncJsonWebsocketConsumer):
    """
    Anonymous sockets are refused before the handshake completes. Everything
    else is accepted, then handed to ``on_connect``.

    Subclasses override:
        - on_connect(): authorize, join groups, send the initial frame
        - handle_message(msg_type, data): client frames, routed by "type"

    Service errors raised while handling a frame are sent back as
    ``{"type": "error", "code": ..., "message": ...}`` and the socket stays
    open; ``reject`` is for errors that should end the connection.
    """

    async def connect(self):
        self.user = self.scope.get("user")
        self.joined_groups: Set[str] = set()

        if self.user is None or self.user.is_anonymous:
            await self.close(code=CLOSE_UNAUTHENTICATED)
            return

        self.user_id = self.user.id
        await self.accept()
        await self.on_connect()

    async def on_connect(self):
        pass

    async def disconnect(self, close_code):
        # Group membership must not outlive the socket
        for group in list(self.joined_groups):
            try:
                await self._leave_group(group)
            except Exception:
                logger.exception("Could not leave %s for user %s", group, getattr(self, "user_id", None))
        logger.debug("Socket for user %s closed (%s)", getattr(self, "user_id", None), close_code)

    async def receive_json(self, content: Any, **kwargs):
        msg_type = content.get("type") if isinstance(content, dict) else None
        if not msg_type:
            await self.send_error("Message type is required", code="validation_error")
            return

        try:
            await self.handle_message(msg_type, content)
        except RideServiceError as exc:
            await self.send_service_error(exc)
        except Exception:
            logger.exception("Failed to handle %s frame from user %s", msg_type, self.user_id)
            await self.send_error(f"Error processing {msg_type}")

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        await self.send_error(f"Unknown message type: {msg_type}")

    async def reject(self, exc: RideServiceError):
        """Report ``exc`` to the client, then close with a matching code."""
        await self.send_service_error(exc)
        await self.close(code=CLOSE_NOT_FOUND if isinstance(exc, NotFoundError) else CLOSE_FORBIDDEN)

    # ---------------------- Groups ----------------------

    async def _join_group(self, group_name: str):
        await self.channel_layer.group_add(group_name, self.channel_name)
        self.joined_groups.add(group_name)

    async def _leave_group(self, group_name: str):
        await self.channel_layer.group_discard(group_name, self.channel_name)
        self.joined_groups.discard(group_name)

    # ---------------------- Outgoing frames ----------------------

    async def send_error(self, message: str, code: str = "error"):
        await self.send_json({
            "type": "error",
            "code": code,
            "message": message,
        })

    async def send_service_error(self, exc: RideServiceError):
        await self.send_error(exc.message, code=exc.error_code)

    async def send_event(self, event_type: str, **fields):
        await self.send_json({"type": event_type, **fields})

"""Ride chat WebSocket consumer: history replay followed by live messages."""

import logging
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from django.conf import settings

from services.exceptions import RideServiceError
from realtime.notifications import ride_group_name
from .base import BaseConsumer

logger = logging.getLogger(__name__)


class RideChatConsumer(BaseConsumer):
    """
    Live subscription to one ride's group chat.

    URL: ws://<host>/ws/rides/<ride_id>/chat/?token=<jwt>&order=asc|desc&after=<sequence>

    On connect the consumer joins the ride group *before* reading history, so
    a message stored in between is delivered either in the history or live,
    never lost. History comes in one or more ``history`` frames, the last one
    with ``has_more`` false:

    - with ``after`` every message past that sequence is replayed, in pages
      of CHAT_HISTORY_LIMIT;
    - without it only the latest page is sent and ``has_more`` on that frame
      tells whether older messages exist (fetch them over REST).

    ``last_sequence`` is the highest sequence such that everything from the
    start of the replay up to it has been sent. Live frames at or below it
    are duplicates and dropped. Broadcasts can arrive out of order; a frame
    that skips ahead triggers a backfill of the gap from the log first.
    Clients should still dedupe by message id across reconnects.

    Client -> server:
        {"type": "send_message", "text": "..."}
        {"type": "ping"}

    Server -> client:
        history, chat_message, message_sent, membership_changed,
        ride_cancelled (followed by close), pong, error
    """

    async def on_connect(self):
        self.ride_id = int(self.scope["url_route"]["kwargs"]["ride_id"])
        self.ride_group = ride_group_name(self.ride_id)

        params = parse_qs(self.scope.get("query_string", b"").decode())
        self.newest_first = (params.get("order") or ["asc"])[0] == "desc"
        after = self._parse_sequence((params.get("after") or [None])[0])

        try:
            ride_status = await self._authorize()
        except RideServiceError as exc:
            await self.reject(exc)
            return

        # Join first: nothing published while history loads can be missed
        await self._join_group(self.ride_group)

        if after is None:
            history, older = await self._load_latest()
            self.last_sequence = max([m["sequence"] for m in history], default=0)
            await self._send_history(history, has_more=older)
        else:
            backlog = await self._load_backlog(after)
            self.last_sequence = max([m["sequence"] for m in backlog], default=after)
            await self._send_backlog(backlog)

        if ride_status == "cancelled":
            await self.send_json({
                "type": "ride_cancelled",
                "ride_id": self.ride_id,
                "message": "This ride was cancelled; its chat is read-only.",
            })
            await self.close()

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        if msg_type == "send_message":
            await self._handle_send_message(data)
        elif msg_type == "ping":
            await self.send_event("pong")
        else:
            await self.send_error(f"Unknown message type: {msg_type}")

    # ---------------------- History ----------------------

    async def _send_history(self, messages: List[Dict[str, Any]], has_more: bool):
        await self.send_json({
            "type": "history",
            "ride_id": self.ride_id,
            "order": "desc" if self.newest_first else "asc",
            "messages": messages,
            "has_more": has_more,
        })

    async def _send_backlog(self, backlog: List[Dict[str, Any]]):
        if self.newest_first:
            backlog = list(reversed(backlog))

        page_size = settings.CHAT_HISTORY_LIMIT
        pages = [backlog[i:i + page_size] for i in range(0, len(backlog), page_size)] or [[]]
        for index, page in enumerate(pages):
            await self._send_history(page, has_more=index < len(pages) - 1)

    # ---------------------- Message Handlers ----------------------

    async def _handle_send_message(self, data: Dict[str, Any]):
        text = data.get("text")
        if not isinstance(text, str):
            await self.send_error("send_message requires text", code="validation_error")
            return

        # The stored message reaches this socket through the group broadcast
        message = await self._append(text)
        await self.send_event("message_sent", message_id=message["id"], sequence=message["sequence"])

    # ---------------------- Event Handlers (from group_send) ----------------------

    async def chat_message(self, event):
        message = event.get("message") or {}
        sequence = message.get("sequence", 0)
        if sequence <= self.last_sequence:
            return

        if sequence > self.last_sequence + 1:
            # An earlier broadcast is still in flight; the log already has it
            missed = await self._load_backlog(self.last_sequence, up_to=sequence - 1)
            logger.debug(
                "Ride %s chat gap %s..%s, backfilled %s message(s)",
                self.ride_id, self.last_sequence + 1, sequence - 1, len(missed),
            )
            for earlier in missed:
                await self._deliver(earlier)

        await self._deliver(message)

    async def _deliver(self, message: Dict[str, Any]):
        self.last_sequence = max(self.last_sequence, message["sequence"])
        await self.send_json({
            "type": "chat_message",
            "message": message,
        })

    async def membership_changed(self, event):
        await self.send_json({
            "type": "membership_changed",
            "ride_id": event.get("ride_id"),
            "action": event.get("action"),
            "user_id": event.get("user_id"),
            "ride": event.get("ride_data", {}),
        })

        # Someone who gives up their seat stops receiving the live chat
        if event.get("action") == "left" and event.get("user_id") == self.user_id:
            await self.close()

    async def ride_cancelled(self, event):
        await self.send_json({
            "type": "ride_cancelled",
            "ride_id": event.get("ride_id"),
            "message": event.get("message", ""),
        })
        await self.close()

    # ---------------------- Database Helpers ----------------------

    @staticmethod
    def _parse_sequence(raw) -> Optional[int]:
        try:
            value = int(raw)
        except (TypeError, ValueError):
            return None
        return value if value >= 0 else None

    @staticmethod
    def _serialize(messages) -> List[Dict[str, Any]]:
        from chat.serializers import ChatMessageSerializer

        return [dict(m) for m in ChatMessageSerializer(messages, many=True).data]

    @database_sync_to_async
    def _authorize(self) -> str:
        from services.chat import can_read_history
        from services.exceptions import NotAuthorizedError
        from services.ride_management import get_ride

        ride = get_ride(self.ride_id)
        if not can_read_history(ride, self.user):
            raise NotAuthorizedError("Only ride participants can follow this chat")
        return ride.status

    @database_sync_to_async
    def _load_latest(self) -> Tuple[List[Dict[str, Any]], bool]:
        from services.chat import has_older_messages, load_messages

        messages = load_messages(self.ride_id, newest_first=self.newest_first)
        if not messages:
            return [], False
        oldest = min(m.sequence for m in messages)
        return self._serialize(messages), has_older_messages(self.ride_id, oldest)

    @database_sync_to_async
    def _load_backlog(self, after: int, up_to: Optional[int] = None) -> List[Dict[str, Any]]:
        from services.chat import load_backlog

        return self._serialize(load_backlog(self.ride_id, after, up_to=up_to))

    @database_sync_to_async
    def _append(self, text: str) -> Dict[str, Any]:
        from chat.serializers import ChatMessageSerializer
        from services.chat import append_message

        message = append_message(self.ride_id, self.user, text)
        return dict(ChatMessageSerializer(message).data)

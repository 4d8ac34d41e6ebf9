"""
Ride chat stream: an append-only message log per ride with a single,
increasing sequence. New messages are fanned out to the ride's realtime
group once they are committed.
"""

import logging
from typing import List, Optional

from django.conf import settings
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from chat.models import ChatMessage
from rides.models import Ride
from realtime.notifications import broadcast_chat_message
from ..exceptions import NotAuthorizedError, RideClosedError, RideValidationError
from ..ride_management.registry import get_ride

logger = logging.getLogger(__name__)


def _clean_text(text) -> str:
    text = (text or "").strip()
    if not text:
        raise RideValidationError("Message cannot be empty")
    max_length = settings.CHAT_MESSAGE_MAX_LENGTH
    if len(text) > max_length:
        raise RideValidationError(f"Message cannot be longer than {max_length} characters")
    return text


def append_message(ride_id, sender, text) -> ChatMessage:
    """
    Store a message from the host or a current member.

    Raises:
        RideNotFoundError, RideClosedError (ride cancelled),
        NotAuthorizedError, RideValidationError (blank or too long)
    """
    ride = get_ride(ride_id)

    if ride.status == Ride.STATUS_CANCELLED:
        raise RideClosedError("This ride was cancelled; its chat is read-only")

    if not ride.is_participant(sender.id):
        raise NotAuthorizedError()

    text = _clean_text(text)

    with transaction.atomic():
        # The increment keeps the ride row locked until commit, so appends
        # on one ride are serialized and sequence numbers never repeat
        updated = (
            Ride.objects.filter(pk=ride.pk)
            .exclude(status=Ride.STATUS_CANCELLED)
            .update(last_message_seq=F('last_message_seq') + 1)
        )
        if not updated:
            raise RideClosedError("This ride was cancelled; its chat is read-only")

        sequence = Ride.objects.values_list('last_message_seq', flat=True).get(pk=ride.pk)

        sent_at = timezone.now()
        previous_sent_at = (
            ChatMessage.objects.filter(ride_id=ride.pk)
            .order_by('-sequence')
            .values_list('sent_at', flat=True)
            .first()
        )
        if previous_sent_at is not None and previous_sent_at > sent_at:
            sent_at = previous_sent_at

        message = ChatMessage.objects.create(
            ride=ride,
            sender=sender,
            text=text,
            sequence=sequence,
            sent_at=sent_at,
        )

    logger.debug("Message %s (seq %s) appended to ride %s", message.id, sequence, ride.id)
    transaction.on_commit(lambda: broadcast_chat_message(message))
    return message


def can_read_history(ride: Ride, user) -> bool:
    """
    Host, current members, members removed when the ride was cancelled,
    and anyone who has posted in the ride.
    """
    if ride.is_participant(user.id) or ride.was_removed_member(user.id):
        return True
    return ride.messages.filter(sender_id=user.id).exists()


def load_messages(
    ride_id,
    after_sequence: Optional[int] = None,
    newest_first: bool = False,
    limit: Optional[int] = None,
) -> List[ChatMessage]:
    """
    Read a window of the log without permission checks.

    Without a cursor the latest ``limit`` messages are returned; with
    ``after_sequence`` the window starts right after that message.
    """
    max_limit = settings.CHAT_HISTORY_LIMIT
    limit = max_limit if not limit or limit <= 0 else min(limit, max_limit)

    qs = ChatMessage.objects.filter(ride_id=ride_id).select_related('sender')
    if after_sequence is not None:
        qs = qs.filter(sequence__gt=after_sequence)

    if newest_first:
        return list(qs.order_by('-sent_at', '-id')[:limit])

    if after_sequence is not None:
        return list(qs.order_by('sent_at', 'id')[:limit])

    latest = list(qs.order_by('-sent_at', '-id')[:limit])
    latest.reverse()
    return latest


def has_older_messages(ride_id, before_sequence: int) -> bool:
    return ChatMessage.objects.filter(ride_id=ride_id, sequence__lt=before_sequence).exists()


def load_backlog(ride_id, after_sequence: int, up_to: Optional[int] = None) -> List[ChatMessage]:
    """
    Every message after ``after_sequence`` (through ``up_to`` when given),
    oldest first. Read in pages of CHAT_HISTORY_LIMIT, but never truncated.
    """
    page_size = settings.CHAT_HISTORY_LIMIT
    backlog: List[ChatMessage] = []
    cursor = after_sequence

    while True:
        qs = ChatMessage.objects.filter(ride_id=ride_id, sequence__gt=cursor)
        if up_to is not None:
            qs = qs.filter(sequence__lte=up_to)
        page = list(qs.select_related('sender').order_by('sequence')[:page_size])
        backlog.extend(page)
        if len(page) < page_size:
            return backlog
        cursor = page[-1].sequence


def get_history(
    ride_id,
    user,
    after_sequence: Optional[int] = None,
    newest_first: bool = False,
    limit: Optional[int] = None,
) -> List[ChatMessage]:
    """
    Chat history for a participant. Still available after the ride is
    cancelled or has departed.

    Raises:
        RideNotFoundError, NotAuthorizedError
    """
    ride = get_ride(ride_id)
    if not can_read_history(ride, user):
        raise NotAuthorizedError("Only ride participants can read this chat")
    return load_messages(ride.id, after_sequence, newest_first, limit)

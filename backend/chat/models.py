from django.db import models
from django.conf import settings


class ChatMessage(models.Model):
    """
    One message in a ride's group chat.

    Messages are append-only: never edited, never deleted. ``sequence`` is
    allocated per ride and strictly increases; ``sent_at`` never goes
    backwards within a ride.
    """

    ride = models.ForeignKey(
        'rides.Ride',
        on_delete=models.CASCADE,
        related_name='messages'
    )

    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='chat_messages'
    )

    text = models.TextField()
    sequence = models.PositiveIntegerField()
    sent_at = models.DateTimeField()

    class Meta:
        db_table = 'chat_messages'
        ordering = ['sent_at', 'id']
        constraints = [
            models.UniqueConstraint(
                fields=['ride', 'sequence'],
                name='unique_ride_message_sequence'
            )
        ]

    def __str__(self):
        return f"Message #{self.sequence} on Ride #{self.ride_id} by {self.sender}"

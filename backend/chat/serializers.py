from rest_framework import serializers

from accounts.serializers import PublicUserSerializer
from .models import ChatMessage


class ChatMessageSerializer(serializers.ModelSerializer):
    """Wire form of a chat message, used by REST and WebSocket alike"""
    ride_id = serializers.IntegerField(read_only=True)
    sender = PublicUserSerializer(read_only=True)

    class Meta:
        model = ChatMessage
        fields = ['id', 'ride_id', 'sender', 'text', 'sequence', 'sent_at']
        read_only_fields = fields


class ChatMessageCreateSerializer(serializers.Serializer):
    text = serializers.CharField()


class ChatHistoryQuerySerializer(serializers.Serializer):
    """
    ?after=<sequence> resumes after the last message a client has seen,
    ?order=desc returns newest first.
    """
    after = serializers.IntegerField(required=False, min_value=0)
    order = serializers.ChoiceField(choices=['asc', 'desc'], default='asc')
    limit = serializers.IntegerField(required=False, min_value=1)

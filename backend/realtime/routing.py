"""WebSocket URL routing for the realtime app."""

from django.urls import re_path

from .consumers.chat_consumer import RideChatConsumer

websocket_urlpatterns = [
    # Ride group chat (history + live messages + ride events)
    # URL: ws://localhost:8000/ws/rides/<ride_id>/chat/
    re_path(
        r"ws/rides/(?P<ride_id>\d+)/chat/$",
        RideChatConsumer.as_asgi(),
        name="ride-chat-ws"
    ),
]

"""
Realtime app for ride-scoped WebSocket push.

This app provides:
- The ride chat consumer (history replay followed by live messages)
- Ride group notification helpers used by the service layer
- JWT/Cookie authentication middleware for WebSocket connections

Usage:
    from realtime.consumers import RideChatConsumer
    from realtime.notifications import notify_ride_group, broadcast_chat_message
"""

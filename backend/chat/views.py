from rest_framework import status
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from services import chat as chat_stream
from .serializers import (
    ChatMessageSerializer,
    ChatMessageCreateSerializer,
    ChatHistoryQuerySerializer,
)


class RideMessagesView(APIView):
    """
    GET  -> Chat history (?after=<sequence>&order=asc|desc&limit=)
    POST -> Send a message to the ride's group chat

    Live delivery goes over ws/rides/<ride_id>/chat/; this endpoint is the
    HTTP fallback and the way to read history after a ride is cancelled.
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, ride_id: int):
        query = ChatHistoryQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        params = query.validated_data

        messages = chat_stream.get_history(
            ride_id,
            request.user,
            after_sequence=params.get("after"),
            newest_first=params["order"] == "desc",
            limit=params.get("limit"),
        )
        data = ChatMessageSerializer(messages, many=True, context={"request": request}).data
        return Response({"count": len(data), "messages": data})

    def post(self, request, ride_id: int):
        serializer = ChatMessageCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        message = chat_stream.append_message(ride_id, request.user, serializer.validated_data["text"])
        return Response(
            ChatMessageSerializer(message, context={"request": request}).data,
            status=status.HTTP_201_CREATED,
        )

from django.contrib import admin
from .models import ChatMessage


@admin.register(ChatMessage)
class ChatMessageAdmin(admin.ModelAdmin):
    """Read-only view of ride chats, messages are never edited"""
    list_display = ("ride", "sequence", "sender", "sent_at")
    search_fields = ("ride__id", "sender__username", "text")
    readonly_fields = ("ride", "sender", "text", "sequence", "sent_at")

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

from django.contrib import admin
from .models import Review


@admin.register(Review)
class ReviewAdmin(admin.ModelAdmin):
    list_display = ("ride", "reviewer", "reviewee", "rating", "created_at")
    list_filter = ("rating",)
    search_fields = ("ride__id", "reviewer__username", "reviewee__username")

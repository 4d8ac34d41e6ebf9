from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from accounts.models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """Admin panel for custom User model"""

    list_display = [
        "username",
        "email",
        "gender",
        "phone_number",
        "student_id",
        "is_active",
        "is_staff",
    ]

    list_filter = [
        "gender",
        "is_active",
        "is_staff",
        "date_joined",
    ]

    search_fields = [
        "username",
        "email",
        "first_name",
        "last_name",
        "student_id",
    ]

    ordering = ("username",)

    # Extend default Django UserAdmin fieldsets
    fieldsets = BaseUserAdmin.fieldsets + (
        (
            "Rider Info",
            {
                "fields": (
                    "gender",
                    "phone_number",
                    "student_id",
                    "profile_picture",
                )
            },
        ),
    )

    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        (
            "Rider Info",
            {
                "fields": (
                    "gender",
                    "phone_number",
                    "student_id",
                )
            },
        ),
    )

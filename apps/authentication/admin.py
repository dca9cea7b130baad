from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from .models import User

@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ("username", "get_full_name", "role", "is_online", "is_active")
    list_filter = ("role", "is_online", "is_active")
    fieldsets = BaseUserAdmin.fieldsets + (
        ("Restaurant", {"fields": ("role", "phone_number", "is_online", "assigned_tables")}),
    )
    filter_horizontal = BaseUserAdmin.filter_horizontal + ("assigned_tables",)

from django.contrib import admin
from .models import WaiterAssignment


@admin.register(WaiterAssignment)
class WaiterAssignmentAdmin(admin.ModelAdmin):
    list_display = ("assignment_id", "order", "waiter", "position", "status", "expires_at")
    list_filter = ("status",)
    search_fields = ("assignment_id", "order__order_number")
    readonly_fields = ("candidates", "created_at", "responded_at")

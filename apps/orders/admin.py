from django.contrib import admin
from .models import Table, Order, OrderHistory


@admin.register(Table)
class TableAdmin(admin.ModelAdmin):
    list_display = ("number", "section", "seats", "is_occupied")


class OrderHistoryInline(admin.TabularInline):
    model = OrderHistory
    extra = 0
    readonly_fields = ("status_from", "status_to", "changed_by", "notes", "timestamp")


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("order_number", "table", "status", "assigned_waiter", "total", "created_at")
    list_filter = ("status", "priority")
    search_fields = ("order_number",)
    inlines = [OrderHistoryInline]

from django.contrib import admin
from .models import Payment, PaymentParticipant, PaymentEvent


class PaymentParticipantInline(admin.TabularInline):
    model = PaymentParticipant
    extra = 0


class PaymentEventInline(admin.TabularInline):
    model = PaymentEvent
    extra = 0
    readonly_fields = ("status", "amount", "participant", "note", "timestamp")


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("id", "order", "payment_type", "total_amount", "paid_amount", "status", "created_at")
    list_filter = ("status", "payment_type")
    inlines = [PaymentParticipantInline, PaymentEventInline]

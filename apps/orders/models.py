import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone


def generate_order_number():
    """Simple readable order number generator."""
    return uuid.uuid4().hex[:8].upper()


class Table(models.Model):
    """A physical table on the floor; numbers drive waiter proximity."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    number = models.PositiveIntegerField(unique=True)
    section = models.CharField(max_length=50, blank=True)
    seats = models.PositiveIntegerField(default=4)
    is_occupied = models.BooleanField(default=False)

    class Meta:
        db_table = "orders_table"
        ordering = ["number"]

    def __str__(self):
        return f"Table {self.number}"


class Order(models.Model):
    """An order placed from a table, waiting for a waiter to take it."""

    STATUS_PENDING = "pending"
    STATUS_CONFIRMED = "confirmed"
    STATUS_PREPARING = "preparing"
    STATUS_READY = "ready"
    STATUS_SERVED = "served"
    STATUS_COMPLETED = "completed"
    STATUS_CANCELLED = "cancelled"

    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_CONFIRMED, "Confirmed"),
        (STATUS_PREPARING, "Preparing"),
        (STATUS_READY, "Ready"),
        (STATUS_SERVED, "Served"),
        (STATUS_COMPLETED, "Completed"),
        (STATUS_CANCELLED, "Cancelled"),
    ]

    # Orders still occupying a waiter
    OPEN_STATUSES = (STATUS_CONFIRMED, STATUS_PREPARING, STATUS_READY, STATUS_SERVED)

    PRIORITY_CHOICES = [
        ("low", "Low"),
        ("normal", "Normal"),
        ("high", "High"),
        ("urgent", "Urgent"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order_number = models.CharField(max_length=32, unique=True, default=generate_order_number)

    table = models.ForeignKey(Table, on_delete=models.SET_NULL, null=True, blank=True, related_name="orders")
    customer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="orders",
    )
    assigned_waiter = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="assigned_orders",
    )
    assigned_at = models.DateTimeField(blank=True, null=True)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default="normal")

    # Denormalised summary used in assignment offers
    item_count = models.PositiveIntegerField(default=0)
    total = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    special_instructions = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "orders_order"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"]),
            models.Index(fields=["assigned_waiter", "status"]),
            models.Index(fields=["order_number"]),
        ]

    def __str__(self):
        return f"{self.order_number} - {self.get_status_display()}"

    @property
    def table_number(self):
        return self.table.number if self.table_id else None

    def assign_to(self, waiter, note=""):
        """Hand the order to ``waiter`` and confirm it."""
        previous = self.status
        self.assigned_waiter = waiter
        self.assigned_at = timezone.now()
        self.status = self.STATUS_CONFIRMED
        self.save(update_fields=["assigned_waiter", "assigned_at", "status", "updated_at"])

        OrderHistory.objects.create(
            order=self,
            status_from=previous,
            status_to=self.status,
            changed_by=waiter,
            notes=note or f"Accepted by waiter {waiter.get_full_name()}",
        )


class OrderHistory(models.Model):
    """Track order status changes for audit / timeline."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="history")
    status_from = models.CharField(max_length=50, blank=True)
    status_to = models.CharField(max_length=50)
    changed_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, related_name="order_changes")
    notes = models.TextField(blank=True)
    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "orders_orderhistory"
        ordering = ["-timestamp"]
        indexes = [
            models.Index(fields=["changed_by", "timestamp"]),
        ]

    def __str__(self):
        return f"{self.order.order_number}: {self.status_from} -> {self.status_to} at {self.timestamp}"

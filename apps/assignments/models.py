import uuid
from datetime import timedelta

from django.conf import settings
from django.db import models
from django.utils import timezone


def generate_assignment_id(order):
    return f"{order.pk}-{uuid.uuid4().hex[:8]}"


class WaiterAssignmentQuerySet(models.QuerySet):
    def pending(self):
        return self.filter(status=WaiterAssignment.STATUS_PENDING)

    def overdue(self, now=None):
        return self.pending().filter(expires_at__lte=now or timezone.now())

    def live(self, now=None):
        return self.pending().filter(expires_at__gt=now or timezone.now())


class WaiterAssignment(models.Model):
    """One offer of one order to one waiter, as the server sees it."""

    STATUS_PENDING = "pending"
    STATUS_ACCEPTED = "accepted"
    STATUS_PASSED = "passed"
    STATUS_TIMED_OUT = "timed_out"

    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_ACCEPTED, "Accepted"),
        (STATUS_PASSED, "Passed"),
        (STATUS_TIMED_OUT, "Timed out"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    assignment_id = models.CharField(max_length=100, unique=True)
    order = models.ForeignKey("orders.Order", on_delete=models.CASCADE, related_name="assignments")
    waiter = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="assignment_offers",
    )

    # Ranked waiter ids for the cascade; ``position`` is 1-based into it
    candidates = models.JSONField(default=list)
    position = models.PositiveIntegerField(default=1)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    timeout_ms = models.PositiveIntegerField()
    pass_reason = models.CharField(max_length=255, blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    expires_at = models.DateTimeField()
    responded_at = models.DateTimeField(blank=True, null=True)

    objects = WaiterAssignmentQuerySet.as_manager()

    class Meta:
        db_table = "assignments_waiterassignment"
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["status", "expires_at"]),
            models.Index(fields=["waiter", "status"]),
        ]

    def __str__(self):
        return f"{self.assignment_id} -> {self.waiter} ({self.status})"

    def save(self, *args, **kwargs):
        if not self.expires_at:
            self.expires_at = self.created_at + timedelta(milliseconds=self.timeout_ms)
        super().save(*args, **kwargs)

    @property
    def total_waiters(self):
        return len(self.candidates)

    @property
    def is_pending(self):
        return self.status == self.STATUS_PENDING

    def is_expired(self, now=None):
        return (now or timezone.now()) >= self.expires_at

    def remaining_ms(self, now=None):
        remaining = self.expires_at - (now or timezone.now())
        return max(0, int(remaining.total_seconds() * 1000))

    def resolve(self, status, reason=""):
        self.status = status
        self.responded_at = timezone.now()
        if reason:
            self.pass_reason = reason[:255]
        self.save(update_fields=["status", "responded_at", "pass_reason"])

import uuid

from django.db import models
from django.conf import settings


# ------------------------------------
# Shared constants
# ------------------------------------
NOTIFICATION_TYPE_CHOICES = [
    ("assignment_request", "Assignment Request"),
    ("assignment_timeout", "Assignment Timed Out"),
    ("waiter_assigned", "Waiter Assigned"),
    ("no_waiter", "No Waiter Available"),
    ("payment", "Payment"),
]


# ------------------------------------
# Models
# ------------------------------------
class Notification(models.Model):
    TYPE_CHOICES = NOTIFICATION_TYPE_CHOICES

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    target_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="notifications"
    )
    title = models.CharField(max_length=255)
    message = models.TextField()
    notification_type = models.CharField(
        max_length=20,
        choices=TYPE_CHOICES
    )
    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="notifications",
    )
    is_read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    def mark_as_read(self):
        self.is_read = True
        self.save(update_fields=["is_read"])

    def __str__(self):
        return f"{self.title} - {self.target_user}"

    def to_dict(self):
        return {
            "id": str(self.id),
            "title": self.title,
            "message": self.message,
            "type": self.notification_type,
            "orderId": str(self.order_id) if self.order_id else None,
            "isRead": self.is_read,
            "createdAt": self.created_at.isoformat(),
        }

    class Meta:
        ordering = ["-created_at"]
        indexes = [models.Index(fields=["target_user", "is_read"])]

from django.conf import settings
from rest_framework import serializers


def default_timeout_ms():
    return settings.RESTAURANT_SETTINGS["ASSIGNMENT_TIMEOUT_MS"]


class OrderSnapshotSerializer(serializers.Serializer):
    """Order summary embedded in an assignment request (camelCase on the wire)."""

    PRIORITY_CHOICES = ["low", "normal", "high", "urgent"]

    id = serializers.CharField(max_length=64)
    orderNumber = serializers.CharField(source="order_number", max_length=32)
    tableNumber = serializers.IntegerField(source="table_number", allow_null=True, required=False)
    items = serializers.IntegerField(min_value=0, required=False, default=0)
    total = serializers.DecimalField(max_digits=10, decimal_places=2, required=False)
    createdAt = serializers.DateTimeField(source="created_at", allow_null=True, required=False)
    priority = serializers.ChoiceField(choices=PRIORITY_CHOICES, required=False, default="normal")


class AssignmentRequestSerializer(serializers.Serializer):
    """Payload of ``order:assignment-request``; used both to build and to read offers."""

    assignmentId = serializers.CharField(source="assignment_id", max_length=100)
    order = OrderSnapshotSerializer()
    timeout = serializers.IntegerField(min_value=0, required=False, default=default_timeout_ms)
    position = serializers.IntegerField(min_value=1, required=False, default=1)
    totalWaiters = serializers.IntegerField(source="total_waiters", min_value=1, required=False, default=1)

    def validate(self, attrs):
        if attrs["position"] > attrs["total_waiters"]:
            raise serializers.ValidationError("position cannot exceed totalWaiters")
        return attrs


class AssignmentTimeoutSerializer(serializers.Serializer):
    """Payload of ``order:assignment-timeout``."""

    assignmentId = serializers.CharField(source="assignment_id", max_length=100)
    orderNumber = serializers.CharField(source="order_number", required=False, allow_blank=True, default="")

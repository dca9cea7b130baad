from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from typing import Optional

from django.utils import timezone


@dataclass(frozen=True)
class OrderSnapshot:
    """Read-only summary of an order taken when the offer was made."""

    id: str
    order_number: str
    table_number: Optional[int] = None
    items: int = 0
    total: Decimal = Decimal("0.00")
    created_at: Optional[object] = None
    priority: str = "normal"

    @classmethod
    def from_order(cls, order):
        return cls(
            id=str(order.pk),
            order_number=order.order_number,
            table_number=order.table_number,
            items=order.item_count,
            total=order.total,
            created_at=order.created_at,
            priority=order.priority,
        )


@dataclass(frozen=True)
class AssignmentOffer:
    """A proposal that this waiter handles one order."""

    assignment_id: str
    order: OrderSnapshot
    timeout: int
    position: int = 1
    total_waiters: int = 1
    received_at: object = field(default_factory=timezone.now, compare=False)

    @classmethod
    def from_validated(cls, data, received_at=None):
        """Build an offer from AssignmentRequestSerializer.validated_data."""
        return cls(
            assignment_id=data["assignment_id"],
            order=OrderSnapshot(**data["order"]),
            timeout=data["timeout"],
            position=data["position"],
            total_waiters=data["total_waiters"],
            received_at=received_at or timezone.now(),
        )

    @property
    def expires_at(self):
        # Local display only; the server decides when an offer really expires
        return self.received_at + timedelta(milliseconds=self.timeout)

    def remaining_ms(self, now=None):
        now = now or timezone.now()
        return max(0, int((self.expires_at - now).total_seconds() * 1000))

"""
Server side of waiter assignment.

An order is offered to one waiter at a time, nearest first. The waiter
accepts, passes, or lets the offer time out; pass and timeout move the
offer down the candidate list until somebody accepts or the list runs
out. The server owns the timeout: ``expire_overdue`` is the only place an
offer becomes timed out, and it runs before every dispatcher operation and
from the ``run_assignment_timeouts`` command.
"""

import logging
import math

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Count, Q
from django.utils import timezone

from apps.notifications.services import send_notification, send_bulk_notification
from apps.orders.models import Order

from .exceptions import AssignmentForbidden, AssignmentNotFound, NoWaitersAvailable, OrderAlreadyAssigned
from .models import WaiterAssignment, generate_assignment_id
from .offers import AssignmentOffer, OrderSnapshot
from .serializers import AssignmentRequestSerializer

logger = logging.getLogger(__name__)

KITCHEN_GROUP = "kitchen"


def waiter_group(waiter_id):
    return f"waiter_{waiter_id}"


def channel_layer_publisher(group, message_type, payload):
    """Send ``payload`` to a Channels group; consumers receive it as ``message_type``."""
    channel_layer = get_channel_layer()
    if channel_layer is None:
        logger.warning("No channel layer configured, cannot send %s to %s", message_type, group)
        return
    async_to_sync(channel_layer.group_send)(group, {"type": message_type, "payload": payload})
    logger.debug("Sent %s to group %s", message_type, group)


# ------------------------------------
# Waiter ranking
# ------------------------------------
def calculate_distance(waiter, table):
    """
    Proximity of ``waiter`` to ``table`` by table number: 0 if the waiter
    covers the table, infinity if they cover nothing.
    """
    numbers = [t.number for t in waiter.assigned_tables.all()]
    if not numbers or table is None:
        return math.inf

    if table.number in numbers:
        return 0

    return min(abs(number - table.number) for number in numbers)


def find_nearest_waiters(table):
    """Online waiters sorted by distance to ``table``, then by open order load."""
    User = get_user_model()
    waiters = (
        User.objects.filter(role=User.ROLE_WAITER, is_active=True, is_online=True)
        .prefetch_related("assigned_tables")
        .annotate(load=Count("assigned_orders", filter=Q(assigned_orders__status__in=Order.OPEN_STATUSES)))
    )

    ranked = sorted(waiters, key=lambda w: (calculate_distance(w, table), w.load))
    if not ranked:
        raise NoWaitersAvailable()
    return ranked


# ------------------------------------
# Payloads
# ------------------------------------
def assignment_offer(assignment, timeout=None):
    return AssignmentOffer(
        assignment_id=assignment.assignment_id,
        order=OrderSnapshot.from_order(assignment.order),
        timeout=assignment.timeout_ms if timeout is None else timeout,
        position=assignment.position,
        total_waiters=assignment.total_waiters,
    )


def request_payload(assignment, timeout=None):
    return dict(AssignmentRequestSerializer(assignment_offer(assignment, timeout)).data)


def timeout_payload(assignment):
    return {
        "assignmentId": assignment.assignment_id,
        "orderNumber": assignment.order.order_number,
    }


class AssignmentDispatcher:
    """
    Runs the assignment cascade. ``publish(group, message_type, payload)``
    delivers push events; messages are collected while the database
    transaction is open and sent once it has committed.
    """

    def __init__(self, publish=None, timeout_ms=None):
        self.publish = publish or channel_layer_publisher
        if timeout_ms is None:
            timeout_ms = settings.RESTAURANT_SETTINGS["ASSIGNMENT_TIMEOUT_MS"]
        self.timeout_ms = timeout_ms

    def assign_order(self, order):
        """Start the cascade for ``order``; returns the first pending assignment."""
        self.expire_overdue()

        events = []
        with transaction.atomic():
            # Concurrent assign calls for one order queue up here
            order = Order.objects.select_for_update().get(pk=order.pk)
            if order.assigned_waiter_id:
                raise OrderAlreadyAssigned()
            if WaiterAssignment.objects.pending().filter(order=order).exists():
                raise OrderAlreadyAssigned("Order assignment already in progress")

            candidates = [str(waiter.pk) for waiter in find_nearest_waiters(order.table)]
            assignment = self._offer(order, candidates, 0, events)
        self._flush(events)
        return assignment

    def accept(self, assignment_id, waiter):
        """``waiter`` takes the order. Returns the updated order."""
        self.expire_overdue()

        events = []
        with transaction.atomic():
            assignment = self._lock_pending(assignment_id)
            if assignment.waiter_id != waiter.pk:
                raise AssignmentForbidden()

            if assignment.is_expired():
                self._expire(assignment, events)
                order = None
            else:
                assignment.resolve(WaiterAssignment.STATUS_ACCEPTED)
                order = assignment.order
                order.assign_to(waiter)
                self._announce_assignment(order, waiter, events)
        self._flush(events)

        if order is None:
            raise AssignmentNotFound()

        logger.info("Waiter %s accepted order %s", waiter.pk, order.order_number)
        return order

    def pass_assignment(self, assignment_id, waiter, reason=""):
        """``waiter`` declines; returns True if another waiter was offered the order."""
        self.expire_overdue()

        events = []
        with transaction.atomic():
            assignment = self._lock_pending(assignment_id)
            if assignment.waiter_id != waiter.pk:
                raise AssignmentForbidden()

            logger.info(
                "Waiter %s passed order %s - Reason: %s",
                waiter.pk, assignment.order.order_number, reason or "Not specified",
            )
            assignment.resolve(WaiterAssignment.STATUS_PASSED, reason=reason)
            next_assignment = self._offer(assignment.order, assignment.candidates, assignment.position, events)
        self._flush(events)
        return next_assignment is not None

    def expire_overdue(self, now=None):
        """Time out every pending offer past its deadline; returns how many expired."""
        now = now or timezone.now()
        expired = 0

        for pk in list(WaiterAssignment.objects.overdue(now).values_list("pk", flat=True)):
            events = []
            with transaction.atomic():
                assignment = (
                    WaiterAssignment.objects.select_for_update()
                    .select_related("order", "order__table")
                    .filter(pk=pk, status=WaiterAssignment.STATUS_PENDING)
                    .first()
                )
                if assignment is None:
                    # Answered between the scan and the lock
                    continue
                self._expire(assignment, events)
            self._flush(events)
            expired += 1

        return expired

    def pending_for(self, waiter):
        """Live offers for ``waiter``, oldest first, with the time left to answer."""
        self.expire_overdue()

        now = timezone.now()
        pending = []
        assignments = (
            WaiterAssignment.objects.live(now)
            .filter(waiter=waiter)
            .select_related("order", "order__table")
        )
        for assignment in assignments:
            remaining = assignment.remaining_ms(now)
            payload = request_payload(assignment, timeout=remaining)
            payload["remainingTime"] = remaining
            pending.append(payload)
        return pending

    def _lock_pending(self, assignment_id):
        assignment = (
            WaiterAssignment.objects.select_for_update()
            .select_related("order", "order__table")
            .filter(assignment_id=assignment_id, status=WaiterAssignment.STATUS_PENDING)
            .first()
        )
        if assignment is None:
            raise AssignmentNotFound()
        return assignment

    def _expire(self, assignment, events):
        logger.info("Assignment %s timed out for waiter %s - auto-passing", assignment.assignment_id, assignment.waiter_id)
        assignment.resolve(WaiterAssignment.STATUS_TIMED_OUT)
        events.append((waiter_group(assignment.waiter_id), "order.assignment_timeout", timeout_payload(assignment)))
        send_notification(
            assignment.waiter,
            "Assignment missed",
            f"Order #{assignment.order.order_number} timed out and was passed on",
            "assignment_timeout",
            order=assignment.order,
        )
        self._offer(assignment.order, assignment.candidates, assignment.position, events)

    def _offer(self, order, candidates, index, events):
        User = get_user_model()

        while index < len(candidates):
            waiter = User.objects.filter(pk=candidates[index], is_active=True).first()
            if waiter is None:
                # Deactivated since the ranking was made
                index += 1
                continue

            assignment = WaiterAssignment.objects.create(
                assignment_id=generate_assignment_id(order),
                order=order,
                waiter=waiter,
                candidates=candidates,
                position=index + 1,
                timeout_ms=self.timeout_ms,
                created_at=timezone.now(),
            )
            logger.info(
                "Assigning order %s to waiter %s (%d/%d)",
                order.order_number, waiter.pk, index + 1, len(candidates),
            )
            events.append((waiter_group(waiter.pk), "order.assignment_request", request_payload(assignment)))
            send_notification(
                waiter,
                "New order assignment",
                f"Order #{order.order_number} at table {order.table_number}",
                "assignment_request",
                order=order,
            )
            return assignment

        logger.error("No waiter accepted order %s", order.order_number)
        events.append((KITCHEN_GROUP, "order.no_waiter", {
            "orderId": str(order.pk),
            "orderNumber": order.order_number,
            "tableNumber": order.table_number,
            "message": "No waiter accepted this order",
        }))
        managers = User.objects.filter(role__in=[User.ROLE_MANAGER, User.ROLE_ADMIN], is_active=True)
        send_bulk_notification(
            managers,
            f"No waiter for order #{order.order_number}",
            "No waiter accepted this order",
            "no_waiter",
            order=order,
        )
        return None

    def _announce_assignment(self, order, waiter, events):
        name = waiter.get_full_name()
        send_notification(
            order.customer,
            "Waiter assigned",
            f"{name} is taking care of your order",
            "waiter_assigned",
            order=order,
        )
        events.append((KITCHEN_GROUP, "order.waiter_assigned", {
            "orderId": str(order.pk),
            "orderNumber": order.order_number,
            "waiterId": str(waiter.pk),
            "waiterName": name,
        }))

    def _flush(self, events):
        for group, message_type, payload in events:
            self.publish(group, message_type, payload)

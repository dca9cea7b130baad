import logging
from collections import OrderedDict
from contextlib import ExitStack, contextmanager

from django.conf import settings
from django.utils import timezone

from .offers import AssignmentOffer
from .queue import AssignmentQueue
from .serializers import AssignmentRequestSerializer, AssignmentTimeoutSerializer

logger = logging.getLogger(__name__)


class AssignmentState:
    PENDING = "pending"
    ACCEPTED = "accepted"
    PASSED = "passed"
    TIMED_OUT = "timed_out"

    TERMINAL = (ACCEPTED, PASSED, TIMED_OUT)


def log_notification(level, message):
    logger.info("[%s] %s", level, message)


class AssignmentController:
    """
    Bridges push-channel events to the local offer queue for one waiter
    terminal and exposes the accept / pass / timeout actions.

    Every offer moves from pending to exactly one of accepted, passed or
    timed out. Actions on an id that is no longer queued are no-ops and
    return False, so a server timeout racing a local accept resolves to
    whichever arrives first.

    ``notify(level, message)`` receives the user-facing toasts; levels are
    ``info``, ``success`` and ``warning``.
    """

    def __init__(self, channel, notify=None, clock=None, outcome_memory=None):
        self.channel = channel
        self.queue = AssignmentQueue()
        self._notify = notify or log_notification
        self._clock = clock or timezone.now
        self._outcomes = OrderedDict()
        if outcome_memory is None:
            outcome_memory = settings.RESTAURANT_SETTINGS["ASSIGNMENT_OUTCOME_MEMORY"]
        self._outcome_memory = outcome_memory

    @contextmanager
    def listening(self):
        """Subscribe to the channel for the duration of the ``with`` block."""
        with ExitStack() as stack:
            stack.enter_context(self.channel.subscribe_assignment_request(self.on_assignment_request))
            stack.enter_context(self.channel.subscribe_assignment_timeout(self.on_assignment_timeout))
            stack.enter_context(self.channel.subscribe_connection(self._on_connection_change))
            yield self

    # Read accessors

    @property
    def pending_assignments(self):
        return self.queue.offers()

    @property
    def active_assignment(self):
        return self.queue.active_offer()

    @property
    def is_connected(self):
        return self.channel.is_connected

    @property
    def has_pending_assignments(self):
        return len(self.queue) > 0

    def outcome(self, assignment_id):
        """State of ``assignment_id``: pending, a terminal state, or None if unknown."""
        assignment_id = str(assignment_id)
        if assignment_id in self.queue:
            return AssignmentState.PENDING
        return self._outcomes.get(assignment_id)

    def snapshot(self):
        """State the presentation layer renders."""
        pending = [self._offer_to_dict(offer) for offer in self.queue]
        return {
            "pendingAssignments": pending,
            "activeAssignment": pending[0] if pending else None,
            "isConnected": self.is_connected,
            "hasPendingAssignments": bool(pending),
        }

    # Channel events

    def on_assignment_request(self, payload):
        serializer = AssignmentRequestSerializer(data=payload)
        if not serializer.is_valid():
            logger.warning("Dropping malformed assignment request: %s", serializer.errors)
            return None

        offer = AssignmentOffer.from_validated(serializer.validated_data, received_at=self._clock())

        if offer.assignment_id in self._outcomes:
            logger.debug("Ignoring request for resolved assignment %s", offer.assignment_id)
            return None

        if not self.queue.enqueue(offer):
            logger.debug("Ignoring duplicate assignment request %s", offer.assignment_id)
            return None

        logger.info("Queued assignment %s (%d pending)", offer.assignment_id, len(self.queue))
        self._notify("info", f"New order assignment: Table {offer.order.table_number}")
        return offer

    def on_assignment_timeout(self, payload):
        serializer = AssignmentTimeoutSerializer(data=payload)
        if not serializer.is_valid():
            logger.warning("Dropping malformed assignment timeout: %s", serializer.errors)
            return False

        data = serializer.validated_data
        offer = self._resolve(data["assignment_id"], AssignmentState.TIMED_OUT)
        if offer is None:
            return False

        order_number = data["order_number"] or offer.order.order_number
        self._notify("warning", f"Assignment for Order #{order_number} timed out")
        return True

    def _on_connection_change(self, connected):
        # Queued offers survive a disconnect; the server re-pushes them on reconnect
        if connected:
            logger.info("Assignment channel connected")
        else:
            logger.warning("Assignment channel disconnected with %d pending offers", len(self.queue))

    # User actions

    def accept_assignment(self, assignment_id, order=None):
        offer = self._resolve(assignment_id, AssignmentState.ACCEPTED)
        if offer is None:
            return False

        order_number = _order_number(order) or offer.order.order_number
        self._notify("success", f"Order #{order_number} accepted!")
        return True

    def pass_assignment(self, assignment_id):
        offer = self._resolve(assignment_id, AssignmentState.PASSED)
        if offer is None:
            return False

        self._notify("info", "Assignment passed to next waiter")
        return True

    def timeout_assignment(self, assignment_id):
        """Local timer elapsed before the server said so."""
        return self.on_assignment_timeout({"assignmentId": assignment_id})

    def _resolve(self, assignment_id, state):
        # Queued ids are strings; callers may hand back the raw wire value
        assignment_id = str(assignment_id)
        offer = self.queue.remove(assignment_id)
        if offer is None:
            logger.debug("No pending assignment %s to mark %s", assignment_id, state)
            return None

        self._outcomes[assignment_id] = state
        while len(self._outcomes) > self._outcome_memory:
            self._outcomes.popitem(last=False)

        logger.info("Assignment %s %s", assignment_id, state)
        return offer

    def _offer_to_dict(self, offer):
        data = dict(AssignmentRequestSerializer(offer).data)
        data["receivedAt"] = offer.received_at.isoformat()
        data["remainingTime"] = offer.remaining_ms(self._clock())
        return data


def _order_number(order):
    if order is None:
        return None
    if isinstance(order, dict):
        return order.get("orderNumber") or order.get("order_number")
    return getattr(order, "order_number", None)

"""
Client side of the assignment push channel.

A ``PushChannel`` delivers assignment events to whoever subscribed. Each
subscription returns a ``Subscription`` handle that must be released; the
controller acquires its handles inside a ``with`` block so they are always
released, even when the consumer dies half way through a connection.
"""

import abc
import logging

logger = logging.getLogger(__name__)

ASSIGNMENT_REQUEST = "order:assignment-request"
ASSIGNMENT_TIMEOUT = "order:assignment-timeout"
NO_WAITER = "order:no-waiter"
WAITER_ASSIGNED = "order:waiter-assigned"


class Subscription:
    """Handle returned by a subscribe call. ``unsubscribe`` may be called any number of times."""

    def __init__(self, release):
        self._release = release

    @property
    def active(self):
        return self._release is not None

    def unsubscribe(self):
        release, self._release = self._release, None
        if release is not None:
            release()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.unsubscribe()
        return False


class PushChannel(abc.ABC):
    """The contract a controller needs from a push channel."""

    @abc.abstractmethod
    def subscribe_assignment_request(self, handler):
        """Call ``handler(payload)`` for every assignment request."""

    @abc.abstractmethod
    def subscribe_assignment_timeout(self, handler):
        """Call ``handler(payload)`` for every server-side timeout."""

    @abc.abstractmethod
    def subscribe_connection(self, handler):
        """Call ``handler(connected)`` whenever the connection state flips."""

    @property
    @abc.abstractmethod
    def is_connected(self):
        """Whether the channel currently reaches the server."""


class EventPushChannel(PushChannel):
    """
    In-process channel: the transport (a websocket consumer, a test) calls
    ``deliver`` and ``set_connected``; handlers run synchronously in
    subscription order.
    """

    def __init__(self):
        self._handlers = {ASSIGNMENT_REQUEST: [], ASSIGNMENT_TIMEOUT: []}
        self._connection_handlers = []
        self._connected = False

    def _subscribe(self, handlers, handler):
        handlers.append(handler)

        def release():
            # The same handler may be registered twice; drop only this registration
            for index, registered in enumerate(handlers):
                if registered is handler:
                    del handlers[index]
                    break

        return Subscription(release)

    def subscribe_assignment_request(self, handler):
        return self._subscribe(self._handlers[ASSIGNMENT_REQUEST], handler)

    def subscribe_assignment_timeout(self, handler):
        return self._subscribe(self._handlers[ASSIGNMENT_TIMEOUT], handler)

    def subscribe_connection(self, handler):
        return self._subscribe(self._connection_handlers, handler)

    @property
    def is_connected(self):
        return self._connected

    def handler_count(self, event_name=None):
        if event_name is None:
            return sum(len(h) for h in self._handlers.values()) + len(self._connection_handlers)
        return len(self._handlers[event_name])

    def deliver(self, event_name, payload):
        """Hand ``payload`` to every handler registered for ``event_name``."""
        try:
            handlers = self._handlers[event_name]
        except KeyError:
            logger.warning("Ignoring unknown push event %r", event_name)
            return 0

        for handler in list(handlers):
            handler(payload)
        return len(handlers)

    def set_connected(self, connected):
        if connected == self._connected:
            return
        self._connected = connected
        logger.debug("Push channel %s", "connected" if connected else "disconnected")
        for handler in list(self._connection_handlers):
            handler(connected)

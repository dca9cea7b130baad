import json
import logging
from contextlib import ExitStack

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer

from .channel import ASSIGNMENT_REQUEST, ASSIGNMENT_TIMEOUT, NO_WAITER, WAITER_ASSIGNED, EventPushChannel
from .controller import AssignmentController
from .exceptions import AssignmentError
from .services import KITCHEN_GROUP, AssignmentDispatcher, waiter_group

logger = logging.getLogger(__name__)

CLOSE_FORBIDDEN = 4403


class WaiterAssignmentConsumer(AsyncJsonWebsocketConsumer):
    """
    One waiter terminal. Group messages from the dispatcher are fed into a
    local push channel; an AssignmentController keeps the terminal's offer
    queue, and after every event the consumer sends the queued toasts and
    a fresh state snapshot to the browser.
    """

    dispatcher_class = AssignmentDispatcher

    async def connect(self):
        user = self.scope.get("user")
        if user is None or not user.is_authenticated or not user.is_waiter():
            await self.close(code=CLOSE_FORBIDDEN)
            return

        self.user = user
        self.group_name = waiter_group(user.pk)
        self.dispatcher = self.dispatcher_class()
        self.toasts = []
        self.push_channel = EventPushChannel()
        self.controller = AssignmentController(self.push_channel, notify=self.queue_toast)

        self.subscriptions = ExitStack()
        self.subscriptions.enter_context(self.controller.listening())

        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept()
        await self.set_online(True)
        self.push_channel.set_connected(True)

        # The local queue does not survive a reconnect; replay what the server still holds
        for payload in await self.pending_offers():
            self.push_channel.deliver(ASSIGNMENT_REQUEST, payload)
        await self.flush()

    async def disconnect(self, close_code):
        if not hasattr(self, "group_name"):
            return

        await self.channel_layer.group_discard(self.group_name, self.channel_name)
        self.push_channel.set_connected(False)
        self.subscriptions.close()
        await self.set_online(False)
        logger.info("Waiter %s disconnected (%s)", self.user.pk, close_code)

    # Browser -> server

    async def receive(self, text_data=None, bytes_data=None, **kwargs):
        try:
            content = json.loads(text_data or "")
        except ValueError:
            logger.warning("Dropping non-JSON frame from waiter %s", self.user.pk)
            await self.send_error("Expected a JSON object")
            return
        await self.receive_json(content, **kwargs)

    async def receive_json(self, content, **kwargs):
        if not isinstance(content, dict):
            logger.warning("Dropping malformed frame from waiter %s: %r", self.user.pk, content)
            await self.send_error("Expected a JSON object")
            return

        action = content.get("action")
        assignment_id = content.get("assignmentId")

        if assignment_id in (None, ""):
            await self.send_error("assignmentId is required")
            return
        assignment_id = str(assignment_id)

        if action == "accept":
            if self.controller.accept_assignment(assignment_id, content.get("order")):
                await self.call_dispatcher(self.dispatcher.accept, assignment_id, self.user)
        elif action == "pass":
            if self.controller.pass_assignment(assignment_id):
                await self.call_dispatcher(
                    self.dispatcher.pass_assignment, assignment_id, self.user, str(content.get("reason") or ""),
                )
        elif action == "timeout":
            self.controller.timeout_assignment(assignment_id)
        else:
            await self.send_error(f"Unknown action: {action}")
            return

        await self.flush()

    # Dispatcher -> server

    async def order_assignment_request(self, event):
        self.push_channel.deliver(ASSIGNMENT_REQUEST, event["payload"])
        await self.flush()

    async def order_assignment_timeout(self, event):
        self.push_channel.deliver(ASSIGNMENT_TIMEOUT, event["payload"])
        await self.flush()

    # Helpers

    async def send_error(self, message):
        await self.send_json({"event": "error", "data": {"message": message}})

    def queue_toast(self, level, message):
        self.toasts.append({"level": level, "message": message})

    async def flush(self):
        toasts, self.toasts = self.toasts, []
        for toast in toasts:
            await self.send_json({"event": "toast", "data": toast})
        await self.send_json({"event": "assignments:state", "data": self.controller.snapshot()})

    async def call_dispatcher(self, method, *args):
        try:
            await database_sync_to_async(method)(*args)
        except AssignmentError as exc:
            logger.warning("Dispatcher rejected %s for waiter %s: %s", method.__name__, self.user.pk, exc)
            self.queue_toast("error", str(exc))

    @database_sync_to_async
    def pending_offers(self):
        return self.dispatcher.pending_for(self.user)

    @database_sync_to_async
    def set_online(self, online):
        self.user.set_online(online)


class KitchenConsumer(AsyncJsonWebsocketConsumer):
    """Kitchen and manager screens: which orders found a waiter and which did not."""

    async def connect(self):
        user = self.scope.get("user")
        if user is None or not user.is_authenticated or not user.can_manage_orders():
            await self.close(code=CLOSE_FORBIDDEN)
            return

        self.group_name = KITCHEN_GROUP
        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept()

    async def disconnect(self, close_code):
        if hasattr(self, "group_name"):
            await self.channel_layer.group_discard(self.group_name, self.channel_name)

    async def order_no_waiter(self, event):
        await self.send_json({"event": NO_WAITER, "data": event["payload"]})

    async def order_waiter_assigned(self, event):
        await self.send_json({"event": WAITER_ASSIGNED, "data": event["payload"]})

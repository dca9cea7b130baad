"""
WebSocket routes for Django Channels.
"""

from django.urls import re_path
from . import consumers

websocket_urlpatterns = [
    # Waiter terminals: assignment offers, accept / pass / timeout
    re_path(r"^ws/assignments/$", consumers.WaiterAssignmentConsumer.as_asgi()),

    # Kitchen / manager screens: waiter-assigned and no-waiter events
    re_path(r"^ws/kitchen/$", consumers.KitchenConsumer.as_asgi()),
]

from decimal import Decimal

import pytest

from apps.assignments.channel import EventPushChannel
from apps.assignments.controller import AssignmentController
from apps.assignments.services import AssignmentDispatcher
from apps.authentication.models import User
from apps.orders.models import Order, Table


def assignment_payload(assignment_id, table_number=5, order_number=None, **extra):
    payload = {
        "assignmentId": assignment_id,
        "order": {
            "id": f"order-{assignment_id}",
            "orderNumber": order_number or f"A{assignment_id}",
            "tableNumber": table_number,
            "items": 2,
            "total": "24.50",
            "priority": "normal",
        },
        "timeout": 10000,
        "position": 1,
        "totalWaiters": 3,
    }
    payload.update(extra)
    return payload


@pytest.fixture
def payload():
    return assignment_payload


@pytest.fixture
def channel():
    channel = EventPushChannel()
    channel.set_connected(True)
    return channel


@pytest.fixture
def toasts():
    return []


@pytest.fixture
def controller(channel, toasts):
    controller = AssignmentController(channel, notify=lambda level, message: toasts.append((level, message)))
    with controller.listening():
        yield controller


@pytest.fixture
def published():
    return []


@pytest.fixture
def dispatcher(published):
    return AssignmentDispatcher(
        publish=lambda group, message_type, payload: published.append((group, message_type, payload)),
        timeout_ms=10000,
    )


@pytest.fixture
def tables(db):
    return {n: Table.objects.create(number=n) for n in range(1, 11)}


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def make(role=User.ROLE_WAITER, tables=(), online=True, **kwargs):
        counter["n"] += 1
        user = User.objects.create_user(
            username=kwargs.pop("username", f"{role}{counter['n']}"),
            password="s3cret-pass",
            first_name=kwargs.pop("first_name", role.title()),
            last_name=kwargs.pop("last_name", str(counter["n"])),
            role=role,
            is_online=online,
            **kwargs,
        )
        if tables:
            user.assigned_tables.set(tables)
        return user

    return make


@pytest.fixture
def customer(make_user):
    return make_user(role=User.ROLE_CUSTOMER, online=False)


@pytest.fixture
def order(tables, customer):
    return Order.objects.create(
        table=tables[5],
        customer=customer,
        item_count=3,
        total=Decimal("42.00"),
    )

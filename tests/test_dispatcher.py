import math
from io import StringIO
from datetime import timedelta

import pytest
from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.core.management import call_command
from django.utils import timezone

from apps.assignments.exceptions import (
    AssignmentForbidden,
    AssignmentNotFound,
    NoWaitersAvailable,
    OrderAlreadyAssigned,
)
from apps.assignments.models import WaiterAssignment
from apps.assignments.services import (
    AssignmentDispatcher,
    calculate_distance,
    channel_layer_publisher,
    find_nearest_waiters,
    waiter_group,
)
from apps.authentication.models import User
from apps.notifications.models import Notification
from apps.orders.models import Order

pytestmark = pytest.mark.django_db


@pytest.fixture
def near(make_user, tables):
    return make_user(tables=[tables[5]], first_name="Near")


@pytest.fixture
def far(make_user, tables):
    return make_user(tables=[tables[9]], first_name="Far")


def messages(published, message_type):
    return [(group, payload) for group, kind, payload in published if kind == message_type]


def test_calculate_distance(make_user, tables):
    nowhere = make_user(tables=[])
    covering = make_user(tables=[tables[2], tables[5]])
    nearby = make_user(tables=[tables[1], tables[8]])

    assert calculate_distance(nowhere, tables[5]) == math.inf
    assert calculate_distance(covering, tables[5]) == 0
    assert calculate_distance(nearby, tables[5]) == 3
    assert calculate_distance(covering, None) == math.inf


def test_nearest_waiters_skip_offline_and_other_roles(near, far, make_user, tables):
    make_user(tables=[tables[5]], online=False)
    make_user(role=User.ROLE_KITCHEN, tables=[tables[5]])

    assert find_nearest_waiters(tables[5]) == [near, far]


def test_nearest_waiters_break_ties_by_load(make_user, tables):
    busy = make_user(tables=[tables[5]])
    idle = make_user(tables=[tables[5]])
    Order.objects.create(table=tables[3], assigned_waiter=busy, status=Order.STATUS_PREPARING)
    # Completed orders no longer count
    Order.objects.create(table=tables[3], assigned_waiter=idle, status=Order.STATUS_COMPLETED)

    assert find_nearest_waiters(tables[5]) == [idle, busy]


def test_no_waiters_available(tables):
    with pytest.raises(NoWaitersAvailable):
        find_nearest_waiters(tables[5])


def test_assign_offers_to_nearest_first(dispatcher, published, order, near, far):
    assignment = dispatcher.assign_order(order)

    assert assignment.waiter == near
    assert assignment.position == 1
    assert assignment.candidates == [str(near.pk), str(far.pk)]

    [(group, payload)] = messages(published, "order.assignment_request")
    assert group == waiter_group(near.pk)
    assert payload["assignmentId"] == assignment.assignment_id
    assert payload["order"]["orderNumber"] == order.order_number
    assert payload["order"]["tableNumber"] == 5
    assert payload["order"]["items"] == 3
    assert payload["timeout"] == 10000
    assert payload["position"] == 1
    assert payload["totalWaiters"] == 2


def test_assign_twice_is_rejected(dispatcher, order, near):
    dispatcher.assign_order(order)

    with pytest.raises(OrderAlreadyAssigned):
        dispatcher.assign_order(order)


def test_assign_already_assigned_order(dispatcher, order, near):
    order.assign_to(near)

    with pytest.raises(OrderAlreadyAssigned):
        dispatcher.assign_order(order)


def test_accept_assigns_order(dispatcher, published, order, near, far, customer):
    assignment = dispatcher.assign_order(order)

    accepted = dispatcher.accept(assignment.assignment_id, near)

    assert accepted.assigned_waiter == near
    assert accepted.status == Order.STATUS_CONFIRMED
    assert accepted.history.filter(status_to=Order.STATUS_CONFIRMED).exists()

    assignment.refresh_from_db()
    assert assignment.status == WaiterAssignment.STATUS_ACCEPTED
    assert assignment.responded_at is not None

    [(group, payload)] = messages(published, "order.waiter_assigned")
    assert group == "kitchen"
    assert payload["waiterId"] == str(near.pk)
    assert Notification.objects.filter(target_user=customer, notification_type="waiter_assigned").exists()


def test_accept_by_other_waiter_is_forbidden(dispatcher, order, near, far):
    assignment = dispatcher.assign_order(order)

    with pytest.raises(AssignmentForbidden):
        dispatcher.accept(assignment.assignment_id, far)

    assignment.refresh_from_db()
    assert assignment.is_pending


def test_accept_twice_is_not_found(dispatcher, order, near):
    assignment = dispatcher.assign_order(order)
    dispatcher.accept(assignment.assignment_id, near)

    with pytest.raises(AssignmentNotFound):
        dispatcher.accept(assignment.assignment_id, near)


def test_pass_cascades_to_next_waiter(dispatcher, published, order, near, far):
    first = dispatcher.assign_order(order)

    assert dispatcher.pass_assignment(first.assignment_id, near, reason="On break") is True

    first.refresh_from_db()
    assert first.status == WaiterAssignment.STATUS_PASSED
    assert first.pass_reason == "On break"

    second = WaiterAssignment.objects.pending().get(order=order)
    assert second.waiter == far
    assert second.position == 2
    requests = messages(published, "order.assignment_request")
    assert [group for group, _ in requests] == [waiter_group(near.pk), waiter_group(far.pk)]
    assert requests[1][1]["position"] == 2


def test_last_pass_reports_no_waiter(dispatcher, published, order, near, make_user):
    manager = make_user(role=User.ROLE_MANAGER, online=False)
    assignment = dispatcher.assign_order(order)

    assert dispatcher.pass_assignment(assignment.assignment_id, near) is False

    [(group, payload)] = messages(published, "order.no_waiter")
    assert group == "kitchen"
    assert payload["orderNumber"] == order.order_number
    assert payload["tableNumber"] == 5
    assert not WaiterAssignment.objects.pending().exists()
    assert Notification.objects.filter(target_user=manager, notification_type="no_waiter").count() == 1


def test_cascade_skips_deactivated_waiter(dispatcher, order, near, far, make_user, tables):
    third = make_user(tables=[tables[10]])
    first = dispatcher.assign_order(order)
    far.is_active = False
    far.save()

    dispatcher.pass_assignment(first.assignment_id, near)

    second = WaiterAssignment.objects.pending().get(order=order)
    assert second.waiter == third
    assert second.position == 3


def test_expire_overdue_times_out_and_cascades(dispatcher, published, order, near, far):
    first = dispatcher.assign_order(order)

    expired = dispatcher.expire_overdue(now=timezone.now() + timedelta(seconds=11))

    assert expired == 1
    first.refresh_from_db()
    assert first.status == WaiterAssignment.STATUS_TIMED_OUT

    [(group, payload)] = messages(published, "order.assignment_timeout")
    assert group == waiter_group(near.pk)
    assert payload == {"assignmentId": first.assignment_id, "orderNumber": order.order_number}
    assert WaiterAssignment.objects.pending().get(order=order).waiter == far


def test_expire_overdue_leaves_live_offers(dispatcher, order, near):
    dispatcher.assign_order(order)
    assert dispatcher.expire_overdue() == 0


def test_accept_after_timeout_is_not_found(published, order, near, far):
    dispatcher = AssignmentDispatcher(
        publish=lambda *message: published.append(message),
        timeout_ms=0,
    )
    first = dispatcher.assign_order(order)

    with pytest.raises(AssignmentNotFound):
        dispatcher.accept(first.assignment_id, near)

    first.refresh_from_db()
    assert first.status == WaiterAssignment.STATUS_TIMED_OUT
    order.refresh_from_db()
    assert order.assigned_waiter is None
    assert messages(published, "order.assignment_timeout")


def test_pending_for_lists_live_offers(dispatcher, order, near, far, tables):
    other = Order.objects.create(table=tables[6], item_count=1)
    first = dispatcher.assign_order(order)
    second = dispatcher.assign_order(other)

    pending = dispatcher.pending_for(near)

    assert [p["assignmentId"] for p in pending] == [first.assignment_id, second.assignment_id]
    assert all(0 < p["remainingTime"] <= 10000 for p in pending)
    assert pending[0]["timeout"] == pending[0]["remainingTime"]
    assert dispatcher.pending_for(far) == []


def test_channel_layer_publisher_sends_group_message():
    layer = get_channel_layer()
    channel_name = async_to_sync(layer.new_channel)()
    async_to_sync(layer.group_add)("waiter_test", channel_name)

    channel_layer_publisher("waiter_test", "order.assignment_timeout", {"assignmentId": "1"})

    message = async_to_sync(layer.receive)(channel_name)
    assert message == {"type": "order.assignment_timeout", "payload": {"assignmentId": "1"}}


def test_timeout_sweep_command(order, near, far, settings):
    settings.RESTAURANT_SETTINGS = {**settings.RESTAURANT_SETTINGS, "ASSIGNMENT_TIMEOUT_MS": 0}
    AssignmentDispatcher(publish=lambda *message: None).assign_order(order)
    out = StringIO()

    call_command("run_assignment_timeouts", "--once", stdout=out)

    assert "Expired 1 assignment(s)" in out.getvalue()
    assert WaiterAssignment.objects.filter(order=order, status=WaiterAssignment.STATUS_TIMED_OUT).count() == 1


def test_assign_rechecks_order_under_lock(dispatcher, published, order, near):
    stale = Order.objects.get(pk=order.pk)
    assignment = dispatcher.assign_order(order)
    dispatcher.accept(assignment.assignment_id, near)

    # Loaded before the accept, so it still looks unassigned
    with pytest.raises(OrderAlreadyAssigned):
        dispatcher.assign_order(stale)

    assert not WaiterAssignment.objects.pending().exists()
    assert len(messages(published, "order.assignment_request")) == 1


def test_assign_while_cascade_runs_is_rejected(dispatcher, order, near):
    stale = Order.objects.get(pk=order.pk)
    dispatcher.assign_order(order)

    with pytest.raises(OrderAlreadyAssigned, match="already in progress"):
        dispatcher.assign_order(stale)

    assert WaiterAssignment.objects.filter(order=order).count() == 1


def test_waiters_are_notified_of_offers_and_missed_offers(dispatcher, order, near, far):
    dispatcher.assign_order(order)
    dispatcher.expire_overdue(now=timezone.now() + timedelta(seconds=11))

    near_types = list(Notification.objects.filter(target_user=near).values_list("notification_type", flat=True))
    assert sorted(near_types) == ["assignment_request", "assignment_timeout"]
    assert Notification.objects.get(target_user=far).notification_type == "assignment_request"

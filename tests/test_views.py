import uuid

import pytest
from django.urls import reverse

from apps.assignments.models import WaiterAssignment
from apps.authentication.models import User

pytestmark = pytest.mark.django_db


@pytest.fixture
def waiter(make_user, tables):
    return make_user(tables=[tables[5]])


@pytest.fixture
def kitchen(make_user):
    return make_user(role=User.ROLE_KITCHEN, online=False)


@pytest.fixture
def offer(client, kitchen, waiter, order):
    client.force_login(kitchen)
    response = client.post(reverse("assignments:assign_order", args=[order.pk]))
    client.logout()
    return response.json()["assignmentId"]


def test_assign_order_starts_cascade(client, kitchen, waiter, order):
    client.force_login(kitchen)

    response = client.post(reverse("assignments:assign_order", args=[order.pk]))

    assert response.status_code == 201
    body = response.json()
    assert body["assignedTo"] == str(waiter.pk)
    assert body["waitingForResponse"] is True
    assert WaiterAssignment.objects.pending().filter(assignment_id=body["assignmentId"]).exists()


def test_assign_unknown_order(client, kitchen):
    client.force_login(kitchen)
    response = client.post(reverse("assignments:assign_order", args=[uuid.uuid4()]))
    assert response.status_code == 404


def test_assign_without_waiters(client, kitchen, order):
    client.force_login(kitchen)

    response = client.post(reverse("assignments:assign_order", args=[order.pk]))

    assert response.status_code == 404
    assert response.json()["error"] == "No active waiters available"


def test_assign_requires_login(client, order):
    response = client.post(reverse("assignments:assign_order", args=[order.pk]))
    assert response.status_code == 401


def test_waiter_cannot_assign(client, waiter, order):
    client.force_login(waiter)
    response = client.post(reverse("assignments:assign_order", args=[order.pk]))
    assert response.status_code == 403


def test_assign_rejects_get(client, kitchen, order):
    client.force_login(kitchen)
    response = client.get(reverse("assignments:assign_order", args=[order.pk]))
    assert response.status_code == 405


def test_my_pending(client, waiter, offer):
    client.force_login(waiter)

    response = client.get(reverse("assignments:my_pending"))

    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 1
    assert body["assignments"][0]["assignmentId"] == offer
    assert body["assignments"][0]["remainingTime"] > 0


def test_accept(client, waiter, offer, order):
    client.force_login(waiter)

    response = client.post(reverse("assignments:accept", args=[offer]))

    assert response.status_code == 200
    assert response.json()["order"]["assignedWaiter"] == str(waiter.pk)
    order.refresh_from_db()
    assert order.assigned_waiter == waiter


def test_accept_unknown_assignment(client, waiter):
    client.force_login(waiter)

    response = client.post(reverse("assignments:accept", args=["nope"]))

    assert response.status_code == 404
    assert response.json()["error"] == "Assignment expired or not found"


def test_accept_someone_elses_offer(client, make_user, offer):
    client.force_login(make_user())
    response = client.post(reverse("assignments:accept", args=[offer]))
    assert response.status_code == 403


def test_pass_with_reason(client, waiter, offer):
    client.force_login(waiter)

    response = client.post(
        reverse("assignments:pass", args=[offer]),
        data={"reason": "Too busy"},
        content_type="application/json",
    )

    assert response.status_code == 200
    assert response.json()["nextWaiter"] is False
    assert WaiterAssignment.objects.get(assignment_id=offer).pass_reason == "Too busy"


def test_pass_with_invalid_json(client, waiter, offer):
    client.force_login(waiter)

    response = client.post(
        reverse("assignments:pass", args=[offer]),
        data="{not json",
        content_type="application/json",
    )

    assert response.status_code == 400
    assert WaiterAssignment.objects.get(assignment_id=offer).is_pending

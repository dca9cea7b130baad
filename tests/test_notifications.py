import pytest
from django.urls import reverse

from apps.notifications.models import Notification
from apps.notifications.services import send_bulk_notification, send_notification

pytestmark = pytest.mark.django_db


def test_send_notification_skips_missing_user():
    assert send_notification(None, "Hello", "Nobody home", "payment") is None
    assert not Notification.objects.exists()


def test_bulk_notification(make_user):
    users = [make_user(), make_user()]
    assert send_bulk_notification(users, "Heads up", "Rush hour", "no_waiter") == 2
    assert Notification.objects.filter(title="Heads up").count() == 2


def test_list_and_mark_read(client, customer, order):
    first = send_notification(customer, "Waiter assigned", "Ana is on it", "waiter_assigned", order=order)
    send_notification(customer, "Bill settled", "Everyone paid", "payment", order=order)
    client.force_login(customer)

    body = client.get(reverse("notifications:notifications_list")).json()
    assert body["unread_count"] == 2
    assert {n["type"] for n in body["notifications"]} == {"waiter_assigned", "payment"}

    response = client.post(reverse("notifications:mark_notification_read", args=[first.pk]))
    assert response.status_code == 200
    first.refresh_from_db()
    assert first.is_read

    body = client.get(reverse("notifications:notifications_list")).json()
    assert body["unread_count"] == 1
    assert len(body["notifications"]) == 1

    body = client.get(reverse("notifications:notifications_list"), {"status": "all"}).json()
    assert len(body["notifications"]) == 2

    assert client.post(reverse("notifications:mark_all_read")).json()["updated"] == 1


def test_cannot_read_someone_elses_notification(client, customer, make_user):
    notification = send_notification(customer, "Private", "For the customer", "payment")
    client.force_login(make_user())

    response = client.post(reverse("notifications:mark_notification_read", args=[notification.pk]))

    assert response.status_code == 404

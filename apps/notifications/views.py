from django.contrib.auth.decorators import login_required
from django.http import JsonResponse
from django.views.decorators.http import require_http_methods
from django.core.exceptions import ObjectDoesNotExist

from .models import Notification


@login_required
@require_http_methods(["GET"])
def notifications_list(request):
    """Return the user's notifications, unread only unless ?status=all"""
    notifications = Notification.objects.filter(target_user=request.user)

    if request.GET.get("status", "unread") == "unread":
        notifications = notifications.filter(is_read=False)

    unread_count = Notification.objects.filter(target_user=request.user, is_read=False).count()

    return JsonResponse({
        "notifications": [n.to_dict() for n in notifications[:50]],
        "unread_count": unread_count,
    })


@login_required
@require_http_methods(["POST"])
def mark_notification_read(request, notification_id):
    """Mark a notification as read"""
    try:
        notification = Notification.objects.get(id=notification_id, target_user=request.user)
    except ObjectDoesNotExist:
        return JsonResponse({"error": "Notification not found"}, status=404)

    notification.mark_as_read()
    return JsonResponse({"success": True, "message": "Notification marked as read"})


@login_required
@require_http_methods(["POST"])
def mark_all_read(request):
    """Mark all notifications as read"""
    updated = Notification.objects.filter(
        target_user=request.user,
        is_read=False,
    ).update(is_read=True)

    return JsonResponse({"success": True, "updated": updated})

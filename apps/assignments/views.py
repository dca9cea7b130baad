import json
import logging

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods
from django.core.exceptions import ObjectDoesNotExist

from apps.authentication.decorators import role_required
from apps.authentication.models import User
from apps.orders.models import Order

from .exceptions import AssignmentError
from .services import AssignmentDispatcher

logger = logging.getLogger(__name__)


def error_response(exc):
    return JsonResponse({"error": str(exc)}, status=exc.status_code)


# -----------------------
# Admin / kitchen
# -----------------------
@csrf_exempt
@require_http_methods(["POST"])
@role_required(User.ROLE_KITCHEN, User.ROLE_MANAGER, User.ROLE_ADMIN)
def assign_order(request, order_id):
    """
    Offer an order to the nearest available waiter.
    """
    try:
        order = Order.objects.select_related("table").get(id=order_id)
    except ObjectDoesNotExist:
        return JsonResponse({"error": "Order not found"}, status=404)

    try:
        assignment = AssignmentDispatcher().assign_order(order)
    except AssignmentError as exc:
        return error_response(exc)

    return JsonResponse({
        "message": "Order assignment initiated",
        "assignmentId": assignment.assignment_id,
        "assignedTo": str(assignment.waiter_id),
        "waitingForResponse": True,
    }, status=201)


# -----------------------
# Waiter
# -----------------------
@require_http_methods(["GET"])
@role_required(User.ROLE_WAITER)
def my_pending_assignments(request):
    """
    All offers currently waiting on the logged-in waiter.
    """
    assignments = AssignmentDispatcher().pending_for(request.user)
    return JsonResponse({"assignments": assignments, "count": len(assignments)})


@csrf_exempt
@require_http_methods(["POST"])
@role_required(User.ROLE_WAITER)
def accept_assignment(request, assignment_id):
    try:
        order = AssignmentDispatcher().accept(assignment_id, request.user)
    except AssignmentError as exc:
        return error_response(exc)

    return JsonResponse({
        "message": "Order accepted successfully",
        "order": {
            "id": str(order.id),
            "orderNumber": order.order_number,
            "status": order.status,
            "assignedWaiter": str(order.assigned_waiter_id),
        },
    })


@csrf_exempt
@require_http_methods(["POST"])
@role_required(User.ROLE_WAITER)
def pass_assignment(request, assignment_id):
    """
    Pass the order on to the next waiter. Optional JSON: { "reason": "..." }
    """
    try:
        data = json.loads(request.body.decode("utf-8") or "{}")
    except ValueError:
        return JsonResponse({"error": "Invalid JSON body"}, status=400)
    if not isinstance(data, dict):
        return JsonResponse({"error": "Expected a JSON object"}, status=400)

    try:
        has_next = AssignmentDispatcher().pass_assignment(assignment_id, request.user, data.get("reason", ""))
    except AssignmentError as exc:
        return error_response(exc)

    return JsonResponse({"message": "Order passed to next waiter", "nextWaiter": has_next})

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods
from django.contrib.auth.decorators import login_required
from django.core.exceptions import ObjectDoesNotExist, ValidationError
import json
import logging

from apps.authentication.decorators import role_required
from apps.authentication.models import User
from apps.notifications.services import send_notification
from apps.orders.models import Order

from .models import Payment, PaymentError

logger = logging.getLogger(__name__)


def _load_json(request):
    data = json.loads(request.body.decode("utf-8") or "{}")
    if not isinstance(data, dict):
        raise ValueError("Expected a JSON object")
    return data


def _can_access(user, payment):
    return user.is_staff_member() or payment.customer_id == user.pk


def _get_payment(request, payment_id):
    """Fetch a payment the user may see; returns (payment, error_response)."""
    try:
        payment = Payment.objects.get(id=payment_id)
    except ObjectDoesNotExist:
        return None, JsonResponse({"error": "Payment not found"}, status=404)

    if not _can_access(request.user, payment):
        return None, JsonResponse({"error": "Unauthorized"}, status=403)
    return payment, None


# -----------------------
# Payment API Views
# -----------------------
@csrf_exempt
@login_required
@require_http_methods(["POST"])
def create_payment(request, order_id):
    """
    Open a payment for an order. Returns the existing open payment if there is one.
    """
    try:
        order = Order.objects.get(id=order_id)
    except ObjectDoesNotExist:
        return JsonResponse({"error": "Order not found"}, status=404)

    if not (request.user.is_staff_member() or order.customer_id == request.user.pk):
        return JsonResponse({"error": "Unauthorized"}, status=403)

    existing = order.payments.exclude(status__in=[Payment.STATUS_REFUNDED, Payment.STATUS_FAILED]).first()
    if existing:
        return JsonResponse(existing.to_dict(), status=200)

    payment = Payment.objects.create(
        order=order,
        customer=order.customer,
        table=order.table,
        total_amount=order.total,
    )
    logger.info("Payment %s opened for order %s", payment.id, order.order_number)
    return JsonResponse(payment.to_dict(), status=201)


@login_required
@require_http_methods(["GET"])
def payment_detail(request, payment_id):
    payment, error = _get_payment(request, payment_id)
    if error:
        return error
    return JsonResponse(payment.to_dict(), status=200)


@csrf_exempt
@login_required
@require_http_methods(["POST"])
def split_payment(request, payment_id):
    """
    Split a payment across a group.
    Expected JSON: { "participants": ["Asha", "Ravi"], "splitMode": "equal" }
    or { "participants": [{"name": "Asha", "amount": 300}, ...], "splitMode": "unequal" }
    """
    payment, error = _get_payment(request, payment_id)
    if error:
        return error

    try:
        data = _load_json(request)
        payment.initialize_group_payment(
            data.get("participants") or [],
            data.get("splitMode", Payment.SPLIT_EQUAL),
        )
    except ValueError as e:
        return JsonResponse({"error": str(e)}, status=400)
    except ValidationError as e:
        return JsonResponse({"error": "; ".join(e.messages)}, status=400)
    except PaymentError as e:
        return JsonResponse({"error": str(e)}, status=400)

    return JsonResponse(payment.to_dict(), status=200)


@csrf_exempt
@login_required
@require_http_methods(["POST"])
def pay_participant(request, payment_id, participant_id):
    """
    Record one participant's share.
    Expected JSON: { "paymentMethod": "upi", "transactionId": "..." }
    """
    payment, error = _get_payment(request, payment_id)
    if error:
        return error

    try:
        data = _load_json(request)
        participant = payment.record_participant_payment(
            participant_id,
            data.get("paymentMethod", "cash"),
            data.get("transactionId", ""),
        )
    except (ValueError, PaymentError) as e:
        return JsonResponse({"error": str(e)}, status=400)

    if payment.all_paid:
        send_notification(
            payment.customer,
            "Bill settled",
            f"Everyone has paid for order #{payment.order.order_number}",
            "payment",
            order=payment.order,
        )

    return JsonResponse({"participant": participant.to_dict(), "payment": payment.to_dict()}, status=200)


@csrf_exempt
@login_required
@require_http_methods(["POST"])
def pay_individual(request, payment_id):
    """
    Settle the whole bill at once.
    Expected JSON: { "paymentMethod": "card", "transactionId": "...", "gateway": "stripe" }
    """
    payment, error = _get_payment(request, payment_id)
    if error:
        return error

    try:
        data = _load_json(request)
        payment.process_individual_payment(
            data.get("paymentMethod", "cash"),
            data.get("transactionId", ""),
            data.get("gateway", "cash"),
        )
    except (ValueError, PaymentError) as e:
        return JsonResponse({"error": str(e)}, status=400)

    return JsonResponse(payment.to_dict(), status=200)


@csrf_exempt
@require_http_methods(["POST"])
@role_required(User.ROLE_MANAGER, User.ROLE_ADMIN)
def refund_payment(request, payment_id):
    """
    Refund a paid payment (managers only).
    Expected JSON: { "amount": 100, "reason": "..." }
    """
    try:
        payment = Payment.objects.get(id=payment_id)
    except ObjectDoesNotExist:
        return JsonResponse({"error": "Payment not found"}, status=404)

    try:
        data = _load_json(request)
        amount = data.get("amount", payment.paid_amount)
        payment.process_refund(amount, data.get("reason", ""))
    except (ValueError, ArithmeticError, PaymentError) as e:
        return JsonResponse({"error": str(e)}, status=400)

    return JsonResponse({"message": "Refund processed", "payment": payment.to_dict()}, status=200)

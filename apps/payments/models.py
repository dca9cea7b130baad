from decimal import Decimal, ROUND_DOWN

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models, transaction
from django.db.models import Avg, Count, Q, Sum
from django.conf import settings
from django.utils import timezone
import uuid


class PaymentError(Exception):
    """Raised for a payment operation that is not allowed in the current state."""


def generate_receipt_number():
    return f"RCP{timezone.now().strftime('%Y%m%d')}{uuid.uuid4().hex[:6].upper()}"


def default_currency():
    return settings.RESTAURANT_SETTINGS["CURRENCY"]


def split_equally(total, count):
    """Split ``total`` into ``count`` shares that add up exactly; leftover cents go to the first shares."""
    cents = int((total * 100).to_integral_value(rounding=ROUND_DOWN))
    base, extra = divmod(cents, count)
    return [(Decimal(base + (1 if i < extra else 0)) / 100).quantize(Decimal("0.01")) for i in range(count)]


class Payment(models.Model):
    """Settlement of one order, paid by one customer or split across a group"""

    PAYMENT_METHOD_CHOICES = [
        ('cash', 'Cash'),
        ('card', 'Card'),
        ('upi', 'UPI'),
        ('wallet', 'Wallet'),
        ('multiple', 'Multiple'),
    ]

    STATUS_PENDING = 'pending'
    STATUS_PARTIAL = 'partial'
    STATUS_PROCESSING = 'processing'
    STATUS_PAID = 'paid'
    STATUS_FAILED = 'failed'
    STATUS_REFUNDED = 'refunded'

    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_PARTIAL, 'Partially Paid'),
        (STATUS_PROCESSING, 'Processing'),
        (STATUS_PAID, 'Paid'),
        (STATUS_FAILED, 'Failed'),
        (STATUS_REFUNDED, 'Refunded'),
    ]

    TYPE_INDIVIDUAL = 'individual'
    TYPE_GROUP = 'group'

    PAYMENT_TYPE_CHOICES = [
        (TYPE_INDIVIDUAL, 'Individual'),
        (TYPE_GROUP, 'Group'),
    ]

    SPLIT_EQUAL = 'equal'
    SPLIT_UNEQUAL = 'unequal'

    SPLIT_MODE_CHOICES = [
        (SPLIT_EQUAL, 'Equal'),
        (SPLIT_UNEQUAL, 'Unequal'),
    ]

    GATEWAY_CHOICES = [
        ('stripe', 'Stripe'),
        ('razorpay', 'Razorpay'),
        ('paypal', 'PayPal'),
        ('cash', 'Cash'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Related objects
    order = models.ForeignKey('orders.Order', on_delete=models.CASCADE, related_name='payments')
    customer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='payments'
    )
    table = models.ForeignKey('orders.Table', on_delete=models.SET_NULL, null=True, blank=True, related_name='payments')

    # Amounts
    total_amount = models.DecimalField(max_digits=10, decimal_places=2, validators=[MinValueValidator(0)])
    paid_amount = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    remaining_amount = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    currency = models.CharField(max_length=3, default=default_currency)

    # Group split
    payment_type = models.CharField(max_length=20, choices=PAYMENT_TYPE_CHOICES, default=TYPE_INDIVIDUAL)
    split_mode = models.CharField(max_length=10, choices=SPLIT_MODE_CHOICES, blank=True)
    participant_count = models.PositiveIntegerField(blank=True, null=True)
    all_paid = models.BooleanField(default=False)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    payment_method = models.CharField(max_length=20, choices=PAYMENT_METHOD_CHOICES, blank=True)
    transaction_id = models.CharField(max_length=100, blank=True, db_index=True)
    payment_gateway = models.CharField(max_length=20, choices=GATEWAY_CHOICES, blank=True)
    payment_date = models.DateTimeField(blank=True, null=True)
    receipt_number = models.CharField(max_length=32, unique=True, blank=True, null=True)
    notes = models.CharField(max_length=500, blank=True)

    # Refund
    refund_amount = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    refund_reason = models.TextField(blank=True)
    refunded_at = models.DateTimeField(blank=True, null=True)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'payments_payment'
        verbose_name = 'Payment'
        verbose_name_plural = 'Payments'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['order', 'status']),
            models.Index(fields=['customer', 'status']),
            models.Index(fields=['status', '-created_at']),
        ]

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._original_status = self.status

    def __str__(self):
        return f"Payment {self.receipt_number or self.id} - {self.total_amount} {self.currency}"

    def save(self, *args, event_note="", event_amount=None, **kwargs):
        if self.status != self.STATUS_REFUNDED:
            self._sync_status()
        self.remaining_amount = max(Decimal('0.00'), self.total_amount - self.paid_amount)

        is_new = self._state.adding
        super().save(*args, **kwargs)

        if not is_new and self.status != self._original_status:
            self.log_event(
                self.status,
                amount=self.paid_amount if event_amount is None else event_amount,
                note=event_note or f"Payment status changed to {self.status}",
            )
        self._original_status = self.status

    def _sync_status(self):
        if self.payment_type == self.TYPE_GROUP and not self._state.adding:
            statuses = list(self.participants.values_list('status', flat=True))
            self.all_paid = bool(statuses) and all(s == PaymentParticipant.STATUS_PAID for s in statuses)
            if self.all_paid:
                self.paid_amount = self.total_amount

        # A zero total (comped bill) is paid once everyone has settled, not by amount
        settled = self.all_paid or (self.payment_type == self.TYPE_INDIVIDUAL and self.payment_date is not None)

        if settled or self.paid_amount >= self.total_amount > 0:
            self.status = self.STATUS_PAID
            if not self.payment_date:
                self.payment_date = timezone.now()
            if not self.receipt_number:
                self.receipt_number = generate_receipt_number()
        elif self.paid_amount > 0:
            self.status = self.STATUS_PARTIAL
        else:
            self.status = self.STATUS_PENDING

    # -----------------------
    # Read helpers
    # -----------------------
    @property
    def is_fully_paid(self):
        return self.status == self.STATUS_PAID and self.paid_amount >= self.total_amount

    @property
    def pending_participants(self):
        if self.payment_type != self.TYPE_GROUP:
            return PaymentParticipant.objects.none()
        return self.participants.filter(status=PaymentParticipant.STATUS_PENDING)

    @property
    def payment_progress(self):
        if self.total_amount == 0:
            return 100
        return int(self.paid_amount * 100 / self.total_amount)

    def _lock(self):
        """Lock this payment's row and reload it, so concurrent payers add up."""
        Payment.objects.select_for_update().get(pk=self.pk)
        self.refresh_from_db()
        self._original_status = self.status

    def log_event(self, status, amount=None, participant="", note=""):
        return PaymentEvent.objects.create(
            payment=self,
            status=status,
            amount=amount,
            participant=participant,
            note=note,
        )

    # -----------------------
    # Operations
    # -----------------------
    def initialize_group_payment(self, participants, split_mode=SPLIT_EQUAL):
        """
        Split the bill. ``participants`` is a list of names for an equal
        split, or of ``{"name": ..., "amount": ...}`` for an unequal one.
        """
        if self.paid_amount > 0 or self.status == self.STATUS_REFUNDED:
            raise PaymentError("Cannot split a payment that has already been settled")
        if not participants:
            raise ValidationError("At least one participant is required")

        if split_mode == self.SPLIT_EQUAL:
            names = [str(name).strip() for name in participants]
            shares = split_equally(self.total_amount, len(names))
        elif split_mode == self.SPLIT_UNEQUAL:
            try:
                names = [str(p["name"]).strip() for p in participants]
                shares = [Decimal(str(p["amount"])).quantize(Decimal("0.01")) for p in participants]
            except (KeyError, TypeError, ArithmeticError):
                raise ValidationError("Unequal split needs a name and amount for every participant")
            if any(share < 0 for share in shares):
                raise ValidationError("Amount cannot be negative")
            if sum(shares) != self.total_amount:
                raise ValidationError(f"Shares add up to {sum(shares)}, expected {self.total_amount}")
        else:
            raise ValidationError(f"Unknown split mode: {split_mode}")

        if any(not name for name in names):
            raise ValidationError("Participant name is required")
        if len(set(names)) != len(names):
            raise ValidationError("Participant names must be unique")

        with transaction.atomic():
            self.participants.all().delete()
            PaymentParticipant.objects.bulk_create([
                PaymentParticipant(payment=self, name=name, amount=share)
                for name, share in zip(names, shares)
            ])
            self.payment_type = self.TYPE_GROUP
            self.split_mode = split_mode
            self.participant_count = len(names)
            self.save()
            self.log_event(
                'group_initialized',
                note=f"Group payment initialized with {len(names)} participants ({split_mode} split)",
            )
        return list(self.participants.all())

    def record_participant_payment(self, participant_id, payment_method, transaction_id=""):
        if self.payment_type != self.TYPE_GROUP:
            raise PaymentError("Not a group payment")

        with transaction.atomic():
            self._lock()
            try:
                participant = self.participants.select_for_update().get(pk=participant_id)
            except PaymentParticipant.DoesNotExist:
                raise PaymentError(f"Participant {participant_id} not found")

            if participant.status == PaymentParticipant.STATUS_PAID:
                raise PaymentError(f'Participant "{participant.name}" has already paid')

            participant.mark_as_paid(payment_method, transaction_id)

            self.paid_amount += participant.amount
            self.payment_method = 'multiple'
            self.save()
            self.log_event(
                'participant_paid',
                amount=participant.amount,
                participant=participant.name,
                note=f"{participant.name} paid {participant.amount} via {payment_method}",
            )
        return participant

    def process_individual_payment(self, payment_method, transaction_id="", gateway='cash'):
        with transaction.atomic():
            self._lock()
            if self.payment_type != self.TYPE_INDIVIDUAL:
                raise PaymentError("Cannot process individual payment for group payment type")
            if self.status in (self.STATUS_PAID, self.STATUS_REFUNDED):
                raise PaymentError(f"Payment is already {self.status}")

            self.paid_amount = self.total_amount
            self.payment_method = payment_method
            self.transaction_id = transaction_id
            self.payment_gateway = gateway
            self.payment_date = timezone.now()
            self.save(event_note=f"Payment completed via {payment_method}")

    def process_refund(self, amount, reason):
        amount = Decimal(str(amount))
        with transaction.atomic():
            self._lock()
            if self.status != self.STATUS_PAID:
                raise PaymentError("Can only refund paid payments")
            if amount <= 0 or amount > self.paid_amount:
                raise PaymentError("Refund amount must be positive and cannot exceed paid amount")

            self.refund_amount = amount
            self.refund_reason = reason
            self.refunded_at = timezone.now()
            self.status = self.STATUS_REFUNDED
            self.save(event_amount=amount, event_note=f"Refund processed: {reason}")

    @classmethod
    def statistics(cls, start_date=None, end_date=None):
        """Totals over paid payments, optionally bounded by payment date"""
        payments = cls.objects.filter(status=cls.STATUS_PAID)
        if start_date:
            payments = payments.filter(payment_date__gte=start_date)
        if end_date:
            payments = payments.filter(payment_date__lte=end_date)

        stats = payments.aggregate(
            total_payments=Count('id'),
            total_revenue=Sum('paid_amount'),
            average_payment=Avg('paid_amount'),
            cash_payments=Count('id', filter=Q(payment_method='cash')),
            card_payments=Count('id', filter=Q(payment_method='card')),
            group_payments=Count('id', filter=Q(payment_type=cls.TYPE_GROUP)),
        )
        stats['total_revenue'] = stats['total_revenue'] or Decimal('0.00')
        stats['average_payment'] = stats['average_payment'] or Decimal('0.00')
        return stats

    def to_dict(self):
        return {
            "id": str(self.id),
            "orderId": str(self.order_id),
            "totalAmount": str(self.total_amount),
            "paidAmount": str(self.paid_amount),
            "remainingAmount": str(self.remaining_amount),
            "paymentType": self.payment_type,
            "splitMode": self.split_mode or None,
            "allPaid": self.all_paid,
            "status": self.status,
            "paymentMethod": self.payment_method or None,
            "receiptNumber": self.receipt_number,
            "progress": self.payment_progress,
            "participants": [p.to_dict() for p in self.participants.all()],
        }


class PaymentParticipant(models.Model):
    """One person's share of a group payment"""

    STATUS_PENDING = 'pending'
    STATUS_PROCESSING = 'processing'
    STATUS_PAID = 'paid'
    STATUS_FAILED = 'failed'

    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_PROCESSING, 'Processing'),
        (STATUS_PAID, 'Paid'),
        (STATUS_FAILED, 'Failed'),
    ]

    payment = models.ForeignKey(Payment, on_delete=models.CASCADE, related_name='participants')
    name = models.CharField(max_length=100)
    amount = models.DecimalField(max_digits=10, decimal_places=2, validators=[MinValueValidator(0)])
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    payment_method = models.CharField(max_length=20, choices=Payment.PAYMENT_METHOD_CHOICES, blank=True)
    transaction_id = models.CharField(max_length=100, blank=True)
    paid_at = models.DateTimeField(blank=True, null=True)
    failure_reason = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'payments_participant'
        ordering = ['id']
        unique_together = [('payment', 'name')]

    def __str__(self):
        return f"{self.name}: {self.amount} ({self.status})"

    def mark_as_paid(self, payment_method, transaction_id=""):
        self.status = self.STATUS_PAID
        self.payment_method = payment_method
        self.transaction_id = transaction_id
        self.paid_at = timezone.now()
        self.save(update_fields=['status', 'payment_method', 'transaction_id', 'paid_at', 'updated_at'])

    def to_dict(self):
        return {
            "id": self.pk,
            "name": self.name,
            "amount": str(self.amount),
            "status": self.status,
            "paymentMethod": self.payment_method or None,
            "paidAt": self.paid_at.isoformat() if self.paid_at else None,
        }


class PaymentEvent(models.Model):
    """Timeline entry for a payment"""

    payment = models.ForeignKey(Payment, on_delete=models.CASCADE, related_name='timeline')
    status = models.CharField(max_length=30)
    amount = models.DecimalField(max_digits=10, decimal_places=2, blank=True, null=True)
    participant = models.CharField(max_length=100, blank=True)
    note = models.CharField(max_length=255, blank=True)
    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'payments_event'
        ordering = ['timestamp', 'id']

    def __str__(self):
        return f"{self.payment_id}: {self.status}"

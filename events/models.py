"""
Event Registration & Payment Ledger Models

This module defines the persistence layer for paid live events with
deposit and installment payments.

Models:
- Event: A bookable event with its price and partial-payment policy
- EventRegistration: One attendee's registration and its balance aggregate
- EventPaymentTracker: One payment attempt (the ledger row)

Ledger rules:
- `EventPaymentTracker.payment_id` is the idempotency key of a payment and
  is never reused.
- Status moves only along `EventPaymentTracker.ALLOWED_TRANSITIONS`.
- At most one completed tracker exists per Stripe PaymentIntent.
- The balance fields on `EventRegistration` are derived from the completed
  trackers by `events.services.ledger` and are never edited by hand.

Author: Trading Academy Development Team
Version: 1.0.0
"""

import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils.translation import gettext_lazy as _

from .exceptions import InvalidPaymentTransition

ZERO = Decimal("0.00")


def _money_field(verbose_name, help_text, **kwargs):
    kwargs.setdefault("default", ZERO)
    return models.DecimalField(
        max_digits=10,
        decimal_places=2,
        verbose_name=verbose_name,
        help_text=help_text,
        **kwargs,
    )


class Event(models.Model):
    """
    A paid live event (workshop, bootcamp, mentorship week).

    The partial-payment policy lives on the event:

    - `payment_mode`: "full_only" or "partial_allowed"
    - `minimum_deposit_amount`: flat minimum deposit (0 = not set)
    - `deposit_percentage`: minimum deposit as a percentage of the price
    - `minimum_installment_amount`: smallest follow-up installment
    """

    PAYMENT_MODE_FULL_ONLY = "full_only"
    PAYMENT_MODE_PARTIAL_ALLOWED = "partial_allowed"
    PAYMENT_MODE_CHOICES = [
        (PAYMENT_MODE_FULL_ONLY, _("Full payment only")),
        (PAYMENT_MODE_PARTIAL_ALLOWED, _("Partial payments allowed")),
    ]

    title = models.CharField(
        max_length=200,
        verbose_name=_("Title"),
        help_text=_("Public title of the event"),
    )
    description = models.TextField(blank=True, verbose_name=_("Description"))
    price = _money_field(_("Price"), _("Full price of the event before discounts"))
    start_date = models.DateTimeField(
        null=True, blank=True, verbose_name=_("Start Date")
    )
    is_active = models.BooleanField(
        default=True,
        verbose_name=_("Active"),
        help_text=_("Inactive events cannot receive new registrations"),
    )
    payment_mode = models.CharField(
        max_length=20,
        choices=PAYMENT_MODE_CHOICES,
        default=PAYMENT_MODE_FULL_ONLY,
        verbose_name=_("Payment Mode"),
    )
    minimum_deposit_amount = _money_field(
        _("Minimum Deposit"),
        _("Flat minimum deposit. Takes precedence over the percentage when > 0"),
    )
    deposit_percentage = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        null=True,
        blank=True,
        verbose_name=_("Deposit Percentage"),
        help_text=_("Minimum deposit as percentage of the price (default 20%)"),
    )
    minimum_installment_amount = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        null=True,
        blank=True,
        verbose_name=_("Minimum Installment"),
        help_text=_("Smallest accepted follow-up payment (default from settings)"),
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return self.title

    @property
    def allows_partial_payments(self) -> bool:
        return self.payment_mode == self.PAYMENT_MODE_PARTIAL_ALLOWED

    class Meta:
        verbose_name = _("Event")
        verbose_name_plural = _("Events")
        ordering = ["-start_date", "title"]
        db_table = "events_event"


class EventRegistration(models.Model):
    """
    An attendee's registration for an event together with its balance.

    The balance fields (`total_paid`, `remaining_balance`, `is_fully_paid`,
    `payment_status`, `payment_history`, `next_payment_due_date`) form the
    registration aggregate. They are always recomputed from the completed
    payment trackers, see `events.services.ledger.recompute_registration`.

    Attributes:
        registration_number: Human readable reference, e.g. REG-20250101-7KQ2M
        total_amount: Price net of discount that has to be paid
        checkout_session_expires_at: After this moment a registration without
            any payment is collected as an abandoned checkout
    """

    MODE_FULL = "full"
    MODE_PARTIAL = "partial"
    MODE_CHOICES = [
        (MODE_FULL, _("Full")),
        (MODE_PARTIAL, _("Partial")),
    ]

    STATUS_PENDING = "pending"
    STATUS_PARTIAL = "partial"
    STATUS_PAID = "paid"
    STATUS_CHOICES = [
        (STATUS_PENDING, _("Pending")),
        (STATUS_PARTIAL, _("Partially paid")),
        (STATUS_PAID, _("Paid")),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    registration_number = models.CharField(
        max_length=32,
        unique=True,
        verbose_name=_("Registration Number"),
    )
    event = models.ForeignKey(
        Event,
        on_delete=models.PROTECT,
        related_name="registrations",
        verbose_name=_("Event"),
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="event_registrations",
        verbose_name=_("User"),
        help_text=_("Account of the attendee, if they were logged in"),
    )
    email = models.EmailField(verbose_name=_("Email"))
    first_name = models.CharField(max_length=100, verbose_name=_("First Name"))
    last_name = models.CharField(max_length=100, verbose_name=_("Last Name"))
    phone = models.CharField(max_length=40, blank=True, verbose_name=_("Phone"))

    original_price = _money_field(_("Original Price"), _("Event price at registration"))
    discount_amount = _money_field(_("Discount"), _("Referral discount applied"))
    total_amount = _money_field(_("Total Amount"), _("Price net of discount"))
    total_paid = _money_field(_("Total Paid"), _("Sum of completed payments"))
    remaining_balance = _money_field(
        _("Remaining Balance"), _("max(0, total amount - total paid)")
    )
    is_fully_paid = models.BooleanField(default=False, verbose_name=_("Fully Paid"))
    payment_mode = models.CharField(
        max_length=10,
        choices=MODE_CHOICES,
        default=MODE_PARTIAL,
        verbose_name=_("Payment Mode"),
    )
    payment_status = models.CharField(
        max_length=10,
        choices=STATUS_CHOICES,
        default=STATUS_PENDING,
        verbose_name=_("Payment Status"),
    )
    payment_history = models.JSONField(
        default=list,
        blank=True,
        verbose_name=_("Payment History"),
        help_text=_("Denormalized copy of the completed payments, oldest first"),
    )
    checkout_session_expires_at = models.DateTimeField(
        null=True,
        blank=True,
        verbose_name=_("Checkout Expires At"),
    )
    next_payment_due_date = models.DateTimeField(
        null=True, blank=True, verbose_name=_("Next Payment Due")
    )
    affiliate_code = models.CharField(
        max_length=50, blank=True, verbose_name=_("Affiliate Code")
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.registration_number} ({self.email})"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def has_received_payment(self) -> bool:
        """True if any payment of this registration ever completed (refunds included)."""
        return self.payments.filter(
            status__in=EventPaymentTracker.RECEIVED_STATUSES
        ).exists()

    class Meta:
        verbose_name = _("Event Registration")
        verbose_name_plural = _("Event Registrations")
        ordering = ["-created_at"]
        db_table = "events_registration"
        constraints = [
            models.UniqueConstraint(
                fields=["event", "email"], name="uniq_registration_event_email"
            ),
        ]
        indexes = [
            models.Index(
                fields=["payment_status", "checkout_session_expires_at"],
                name="registration_checkout_expiry",
            ),
            models.Index(fields=["email"], name="registration_email"),
        ]


class EventPaymentTrackerQuerySet(models.QuerySet):
    def completed(self):
        return self.filter(status=EventPaymentTracker.STATUS_COMPLETED)

    def pending(self):
        return self.filter(status=EventPaymentTracker.STATUS_PENDING)


class EventPaymentTracker(models.Model):
    """
    One payment attempt against a registration.

    Created as "pending" when a checkout session is opened and moved to
    "completed" exactly once when the payment succeeds. Completed rows are
    never deleted, only refunded.
    """

    TYPE_DEPOSIT = "deposit"
    TYPE_INSTALLMENT = "installment"
    TYPE_FINAL = "final"
    TYPE_FULL = "full"
    TYPE_CHOICES = [
        (TYPE_DEPOSIT, _("Deposit")),
        (TYPE_INSTALLMENT, _("Installment")),
        (TYPE_FINAL, _("Final payment")),
        (TYPE_FULL, _("Full payment")),
    ]

    STATUS_PENDING = "pending"
    STATUS_PROCESSING = "processing"
    STATUS_COMPLETED = "completed"
    STATUS_FAILED = "failed"
    STATUS_REFUNDED = "refunded"
    STATUS_CANCELLED = "cancelled"
    STATUS_CHOICES = [
        (STATUS_PENDING, _("Pending")),
        (STATUS_PROCESSING, _("Processing")),
        (STATUS_COMPLETED, _("Completed")),
        (STATUS_FAILED, _("Failed")),
        (STATUS_REFUNDED, _("Refunded")),
        (STATUS_CANCELLED, _("Cancelled")),
    ]

    ALLOWED_TRANSITIONS = {
        STATUS_PENDING: {
            STATUS_PROCESSING,
            STATUS_COMPLETED,
            STATUS_FAILED,
            STATUS_CANCELLED,
        },
        STATUS_PROCESSING: {STATUS_COMPLETED, STATUS_FAILED, STATUS_CANCELLED},
        STATUS_COMPLETED: {STATUS_REFUNDED},
        STATUS_FAILED: set(),
        STATUS_REFUNDED: set(),
        STATUS_CANCELLED: set(),
    }

    # Money actually reached us for these rows
    RECEIVED_STATUSES = (STATUS_COMPLETED, STATUS_REFUNDED)

    payment_id = models.CharField(
        max_length=64,
        unique=True,
        verbose_name=_("Payment ID"),
        help_text=_("Caller generated idempotency key of this payment"),
    )
    registration = models.ForeignKey(
        EventRegistration,
        on_delete=models.CASCADE,
        related_name="payments",
        verbose_name=_("Registration"),
    )
    event = models.ForeignKey(
        Event,
        on_delete=models.PROTECT,
        related_name="payment_trackers",
        verbose_name=_("Event"),
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="event_payments",
    )
    email = models.EmailField(verbose_name=_("Email"))

    payment_type = models.CharField(
        max_length=12, choices=TYPE_CHOICES, verbose_name=_("Payment Type")
    )
    amount = _money_field(_("Amount"), _("Amount of this payment"))
    currency = models.CharField(max_length=3, default="usd", verbose_name=_("Currency"))
    status = models.CharField(
        max_length=12,
        choices=STATUS_CHOICES,
        default=STATUS_PENDING,
        verbose_name=_("Status"),
    )
    total_event_price = _money_field(
        _("Total Event Price"), _("Registration total when the payment was created")
    )
    previous_balance = _money_field(
        _("Previous Balance"), _("Remaining balance before this payment")
    )
    new_balance = _money_field(
        _("New Balance"), _("Remaining balance after this payment")
    )
    description = models.CharField(max_length=255, blank=True)
    metadata = models.JSONField(default=dict, blank=True)

    stripe_session_id = models.CharField(
        max_length=255, blank=True, db_index=True, verbose_name=_("Checkout Session")
    )
    stripe_payment_intent_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        verbose_name=_("Payment Intent"),
    )
    receipt_url = models.URLField(max_length=500, blank=True)

    processed_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)
    failure_reason = models.CharField(max_length=255, blank=True)
    refund_reason = models.CharField(max_length=255, blank=True)
    retry_count = models.PositiveIntegerField(
        default=0,
        verbose_name=_("Retry Count"),
        help_text=_("Failed charge attempts inside the checkout session"),
    )
    last_retry_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = EventPaymentTrackerQuerySet.as_manager()

    def __str__(self) -> str:
        return f"{self.payment_id} {self.amount} {self.currency} [{self.status}]"

    @classmethod
    def statuses_leading_to(cls, status: str) -> list:
        """Statuses from which a tracker may move into `status`."""
        return sorted(
            source
            for source, targets in cls.ALLOWED_TRANSITIONS.items()
            if status in targets
        )

    def can_transition_to(self, status: str) -> bool:
        return status in self.ALLOWED_TRANSITIONS.get(self.status, set())

    def transition_to(self, status: str) -> None:
        """
        Move to `status` in memory. The caller saves.

        Raises:
            InvalidPaymentTransition: if the move is not allowed.
        """
        if not self.can_transition_to(status):
            raise InvalidPaymentTransition(
                f"Payment {self.payment_id} cannot move from {self.status} to {status}."
            )
        self.status = status

    class Meta:
        verbose_name = _("Event Payment")
        verbose_name_plural = _("Event Payments")
        ordering = ["created_at"]
        db_table = "events_payment_tracker"
        constraints = [
            models.UniqueConstraint(
                fields=["stripe_payment_intent_id"],
                condition=models.Q(status="completed"),
                name="uniq_completed_payment_intent",
            ),
        ]
        indexes = [
            models.Index(fields=["registration", "status"], name="payment_registration_status"),
            models.Index(fields=["event", "status"], name="payment_event_status"),
            models.Index(fields=["email", "event"], name="payment_email_event"),
        ]

"""
Checkout Initiation & Additional Payments

Opens Stripe checkout sessions for event registrations.

Initiation (`initiate_registration`)
    1. Validate the amount against the event's deposit policy.
    2. A previous registration for the same event + email without any
       received payment is a discarded draft: delete it with its trackers.
       One with a received payment is a conflict.
    3. Create the registration (total_paid = 0) with a checkout expiry.
    4. Create the gateway session, then the pending tracker. If either
       fails, the registration is deleted again.

Additional payment (`make_payment`)
    The gateway session is created *before* the tracker, so a gateway
    failure never leaves a pending tracker behind. On a registration that
    has not received anything yet, the checkout expiry is moved forward
    first so the collector cannot delete it under the open session.

Author: Trading Academy Development Team
Version: 1.0.0
"""

from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from affiliates.services import InvalidAffiliateCode, resolve_discount
from core.stripe_integration.gateway import PaymentGateway, get_gateway
from events.exceptions import (
    EventNotFound,
    PaymentConflict,
    PaymentValidationError,
)
from events.models import Event, EventPaymentTracker, EventRegistration
from events.services.ledger import ZERO, fetch_registration, to_money

logger = logging.getLogger(__name__)

REGISTRATION_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


@dataclass(frozen=True)
class CheckoutResult:
    registration: EventRegistration
    payment: EventPaymentTracker
    checkout_url: str
    session_id: str


def generate_registration_number(now=None) -> str:
    now = now or timezone.now()
    while True:
        suffix = "".join(secrets.choice(REGISTRATION_ALPHABET) for _ in range(5))
        number = f"REG-{now:%Y%m%d}-{suffix}"
        if not EventRegistration.objects.filter(registration_number=number).exists():
            return number


def calculate_minimum_deposit(event: Event) -> Decimal:
    """Flat minimum if set, else the configured percentage, else 20 % of the price."""
    if event.minimum_deposit_amount and event.minimum_deposit_amount > ZERO:
        return to_money(event.minimum_deposit_amount)
    percentage = event.deposit_percentage
    if not percentage or percentage <= 0:
        percentage = settings.DEFAULT_DEPOSIT_PERCENTAGE
    return to_money(Decimal(event.price) * Decimal(percentage) / Decimal(100))


def validate_installment_amount(amount, remaining_balance, minimum_installment) -> Decimal:
    """
    Check an additional payment against the remaining balance.

    Below the minimum installment only the exact remaining balance is
    accepted, so nobody is left with a residual smaller than a payment
    they are allowed to make.

    Returns:
        The amount quantized to 2 decimals.

    Raises:
        PaymentValidationError: if the amount is not acceptable.
    """
    amount = to_money(amount)
    remaining = to_money(remaining_balance)
    minimum = to_money(minimum_installment)

    if amount <= ZERO:
        raise PaymentValidationError("Payment amount must be greater than zero.")

    if remaining < minimum:
        if amount != remaining:
            raise PaymentValidationError(
                f"You must pay the full remaining balance of ${remaining} "
                "to complete your registration."
            )
        return amount

    if amount < minimum:
        raise PaymentValidationError(f"Minimum payment amount is ${minimum}.")
    if amount > remaining:
        raise PaymentValidationError(
            f"Payment amount exceeds remaining balance of ${remaining}."
        )
    return amount


def _checkout_urls(registration: EventRegistration, payment_id: str):
    base = f"{settings.FRONTEND_URL}/events/{registration.event_id}/registration"
    success_url = (
        f"{base}/success?registration={registration.id}&payment={payment_id}"
        "&session_id={CHECKOUT_SESSION_ID}"
    )
    cancel_url = f"{base}/cancel?registration={registration.id}"
    return success_url, cancel_url


def _open_session(
    gateway: PaymentGateway,
    registration: EventRegistration,
    *,
    amount: Decimal,
    payment_id: str,
    payment_type: str,
):
    success_url, cancel_url = _checkout_urls(registration, payment_id)
    event = registration.event
    label = dict(EventPaymentTracker.TYPE_CHOICES)[payment_type]
    return gateway.create_checkout_session(
        amount=amount,
        currency=settings.PAYMENT_CURRENCY,
        product_name=f"{event.title} - {label}",
        description=f"Registration {registration.registration_number}",
        customer_email=registration.email,
        success_url=success_url,
        cancel_url=cancel_url,
        metadata={
            "payment_id": payment_id,
            "registration_id": str(registration.id),
            "event_id": str(event.id),
            "payment_type": payment_type,
        },
    )


def _discard_draft(registration: EventRegistration) -> None:
    # A registration without any received payment is only an abandoned draft
    pending = registration.payments.exclude(
        status__in=EventPaymentTracker.RECEIVED_STATUSES
    )
    purged, _ = pending.delete()
    logger.info(
        "Discarding unpaid draft registration %s (%s trackers purged)",
        registration.registration_number,
        purged,
    )
    registration.delete()


def initiate_registration(
    *,
    event_id,
    email: str,
    first_name: str,
    last_name: str,
    amount,
    payment_mode: str = EventRegistration.MODE_PARTIAL,
    phone: str = "",
    user=None,
    affiliate_code: Optional[str] = None,
    gateway: Optional[PaymentGateway] = None,
    now=None,
) -> CheckoutResult:
    """
    Create a pending registration, a pending deposit tracker and a checkout session.

    Raises:
        EventNotFound, PaymentValidationError, PaymentConflict, GatewayError
    """
    now = now or timezone.now()
    email = email.strip().lower()
    amount = to_money(amount)

    try:
        event = Event.objects.get(pk=event_id, is_active=True)
    except Event.DoesNotExist:
        raise EventNotFound("Event not found.")

    if payment_mode not in dict(EventRegistration.MODE_CHOICES):
        raise PaymentValidationError(f"Unknown payment mode '{payment_mode}'.")
    if payment_mode == EventRegistration.MODE_PARTIAL and not event.allows_partial_payments:
        raise PaymentValidationError("Partial payments are not enabled for this event.")

    original_price = to_money(event.price)
    discount = ZERO
    if affiliate_code:
        try:
            discount = to_money(resolve_discount(affiliate_code, original_price))
        except InvalidAffiliateCode as exc:
            raise PaymentValidationError(str(exc))
    total_amount = max(ZERO, original_price - discount)

    if amount <= ZERO:
        raise PaymentValidationError("Payment amount must be greater than zero.")
    if amount > total_amount:
        raise PaymentValidationError(
            f"Payment amount exceeds the total of ${total_amount}."
        )
    if payment_mode == EventRegistration.MODE_PARTIAL:
        minimum_deposit = min(calculate_minimum_deposit(event), total_amount)
        if amount < minimum_deposit:
            raise PaymentValidationError(f"Minimum deposit amount is ${minimum_deposit}.")
        payment_type = EventPaymentTracker.TYPE_DEPOSIT
    else:
        if amount != total_amount:
            raise PaymentValidationError(
                f"Full payment must equal the total of ${total_amount}."
            )
        payment_type = EventPaymentTracker.TYPE_FULL

    try:
        with transaction.atomic():
            existing = (
                EventRegistration.objects.select_for_update()
                .filter(event=event, email=email)
                .first()
            )
            if existing is not None:
                if existing.total_paid > ZERO or existing.has_received_payment():
                    raise PaymentConflict(
                        "A paid registration already exists for this email and event."
                    )
                _discard_draft(existing)

            registration = EventRegistration.objects.create(
                registration_number=generate_registration_number(now),
                event=event,
                user=user if user is not None and user.is_authenticated else None,
                email=email,
                first_name=first_name,
                last_name=last_name,
                phone=phone or "",
                original_price=original_price,
                discount_amount=discount,
                total_amount=total_amount,
                total_paid=ZERO,
                remaining_balance=total_amount,
                is_fully_paid=False,
                payment_mode=payment_mode,
                affiliate_code=(affiliate_code or "").strip().upper(),
                checkout_session_expires_at=now
                + timedelta(hours=settings.CHECKOUT_SESSION_TTL_HOURS),
            )
    except IntegrityError:
        # Lost a race against a concurrent initiation for the same email
        raise PaymentConflict("A registration for this email is already in progress.")

    gateway = gateway or get_gateway()
    payment_id = str(uuid.uuid4())
    try:
        session = _open_session(
            gateway,
            registration,
            amount=amount,
            payment_id=payment_id,
            payment_type=payment_type,
        )
        payment = EventPaymentTracker.objects.create(
            payment_id=payment_id,
            registration=registration,
            event=event,
            user=registration.user,
            email=email,
            payment_type=payment_type,
            amount=amount,
            currency=settings.PAYMENT_CURRENCY,
            status=EventPaymentTracker.STATUS_PENDING,
            total_event_price=total_amount,
            previous_balance=total_amount,
            new_balance=total_amount - amount,
            description=dict(EventPaymentTracker.TYPE_CHOICES)[payment_type],
            stripe_session_id=session.id,
        )
    except Exception:
        logger.warning(
            "Checkout for %s failed, rolling back registration %s",
            email,
            registration.registration_number,
        )
        registration.delete()
        raise

    logger.info(
        "Registration %s initiated for event %s: %s %s of %s",
        registration.registration_number,
        event.id,
        payment_type,
        amount,
        total_amount,
    )
    return CheckoutResult(
        registration=registration,
        payment=payment,
        checkout_url=session.url,
        session_id=session.id,
    )


def _extend_checkout_window(registration: EventRegistration) -> None:
    """Push the checkout expiry of an unpaid registration past the new session's lifetime."""
    expires_at = timezone.now() + timedelta(hours=settings.CHECKOUT_SESSION_TTL_HOURS)
    with transaction.atomic():
        # Raises RegistrationNotFound if the collector got there first
        locked = fetch_registration(registration.pk, for_update=True)
        locked.checkout_session_expires_at = expires_at
        locked.save(update_fields=["checkout_session_expires_at", "updated_at"])
    registration.checkout_session_expires_at = expires_at


def make_payment(
    registration_id,
    amount,
    *,
    description: str = "",
    metadata: Optional[dict] = None,
    gateway: Optional[PaymentGateway] = None,
) -> CheckoutResult:
    """
    Open a checkout session for an installment or the final payment.

    Raises:
        RegistrationNotFound, PaymentConflict, PaymentValidationError, GatewayError
    """
    registration = fetch_registration(registration_id)

    if registration.is_fully_paid:
        raise PaymentConflict("Registration is already fully paid.")

    event = registration.event
    remaining = to_money(registration.remaining_balance)
    minimum = event.minimum_installment_amount or settings.DEFAULT_MINIMUM_INSTALLMENT
    amount = validate_installment_amount(amount, remaining, minimum)

    payment_type = (
        EventPaymentTracker.TYPE_FINAL
        if amount == remaining
        else EventPaymentTracker.TYPE_INSTALLMENT
    )
    payment_id = str(uuid.uuid4())

    if registration.total_paid <= ZERO:
        _extend_checkout_window(registration)

    gateway = gateway or get_gateway()
    session = _open_session(
        gateway,
        registration,
        amount=amount,
        payment_id=payment_id,
        payment_type=payment_type,
    )

    payment = EventPaymentTracker.objects.create(
        payment_id=payment_id,
        registration=registration,
        event=event,
        user=registration.user,
        email=registration.email,
        payment_type=payment_type,
        amount=amount,
        currency=settings.PAYMENT_CURRENCY,
        status=EventPaymentTracker.STATUS_PENDING,
        total_event_price=registration.total_amount,
        previous_balance=remaining,
        new_balance=remaining - amount,
        description=description or dict(EventPaymentTracker.TYPE_CHOICES)[payment_type],
        metadata=metadata or {},
        stripe_session_id=session.id,
    )
    logger.info(
        "Payment %s (%s %s) opened for registration %s",
        payment_id,
        payment_type,
        amount,
        registration.registration_number,
    )
    return CheckoutResult(
        registration=registration,
        payment=payment,
        checkout_url=session.url,
        session_id=session.id,
    )

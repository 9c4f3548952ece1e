"""
Payment Gateway Client (core.stripe_integration)
================================================

Outbound calls to the payment gateway live behind a small interface so
the ledger, the webhook handler and the reconciliation sweeps never talk
to the Stripe SDK directly.

- `PaymentGateway` documents the operations the platform needs.
- `StripeGateway` implements them with the official `stripe` SDK.
- `get_gateway()` builds the configured implementation from
  `settings.PAYMENT_GATEWAY_CLASS` (tests swap in an in-memory fake).

Cancel semantics
----------------
`cancel_subscription()` returns one of the CANCEL_* outcomes instead of
raising for the two answers that mean "the subscription is no longer
billable": the subscription does not exist at the gateway, or it was
already cancelled. Any other failure raises `GatewayError` so the caller
keeps the local subscription active and retries on the next sweep.

Author: Trading Academy Development Team
Version: 1.0.0
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone as dt_timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

import stripe
from django.conf import settings
from django.utils.module_loading import import_string

from .exceptions import GatewayError, GatewayUnavailable

logger = logging.getLogger(__name__)

CANCEL_CANCELLED = "cancelled"
CANCEL_ALREADY_CANCELLED = "already_cancelled"
CANCEL_NOT_FOUND = "not_found"

# Outcomes that prove the gateway will not bill the subscription again
CANCEL_SUCCESS_OUTCOMES = frozenset(
    {CANCEL_CANCELLED, CANCEL_ALREADY_CANCELLED, CANCEL_NOT_FOUND}
)


@dataclass(frozen=True)
class CheckoutSession:
    id: str
    url: str


@dataclass(frozen=True)
class GatewaySubscription:
    id: str
    customer_id: Optional[str]
    status: str
    current_period_end: Optional[datetime]
    plan: Optional[str] = None
    price: Optional[Decimal] = None
    currency: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


def to_minor_units(amount: Decimal) -> int:
    """Convert a 2-decimal amount into cents for the gateway."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: Optional[int]) -> Optional[Decimal]:
    if amount is None:
        return None
    return (Decimal(amount) / 100).quantize(Decimal("0.01"))


def from_timestamp(value: Optional[int]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=dt_timezone.utc)


class PaymentGateway:
    """
    Interface of the external payment gateway.

    All methods are blocking I/O bounded by the implementation's timeout.
    """

    def create_checkout_session(
        self,
        *,
        amount: Decimal,
        currency: str,
        product_name: str,
        description: str,
        customer_email: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
    ) -> CheckoutSession:
        raise NotImplementedError

    def list_active_subscriptions(self, customer_id: str) -> List[GatewaySubscription]:
        raise NotImplementedError

    def retrieve_subscription(self, subscription_id: str) -> Optional[GatewaySubscription]:
        raise NotImplementedError

    def cancel_subscription(self, subscription_id: str) -> str:
        raise NotImplementedError


class StripeGateway(PaymentGateway):
    """
    `PaymentGateway` backed by the official stripe SDK.

    The SDK is configured module-wide (api key, API version, retries and
    a bounded HTTP client) the same way dj-stripe expects it.
    """

    def __init__(self, api_key: Optional[str] = None, timeout: Optional[int] = None):
        stripe.api_key = api_key or settings.STRIPE_SECRET_KEY
        stripe.api_version = settings.DJSTRIPE_STRIPE_API_VERSION
        stripe.max_network_retries = settings.STRIPE_MAX_NETWORK_RETRIES
        self.timeout = timeout or settings.STRIPE_REQUEST_TIMEOUT_SECONDS
        # stripe>=8 exports the factory at top level, older SDKs only in http_client
        new_http_client = getattr(stripe, "new_default_http_client", None)
        if new_http_client is None:
            new_http_client = stripe.http_client.new_default_http_client
        stripe.default_http_client = new_http_client(timeout=self.timeout)

    # ---------- checkout ----------

    def create_checkout_session(
        self,
        *,
        amount,
        currency,
        product_name,
        description,
        customer_email,
        success_url,
        cancel_url,
        metadata,
    ):
        params = dict(
            mode="payment",
            payment_method_types=["card"],
            customer_email=customer_email,
            line_items=[
                {
                    "price_data": {
                        "currency": currency,
                        "product_data": {
                            "name": product_name,
                            "description": description,
                        },
                        "unit_amount": to_minor_units(amount),
                    },
                    "quantity": 1,
                }
            ],
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata,
            payment_intent_data={"metadata": metadata},
        )
        try:
            session = stripe.checkout.Session.create(**params)
        except stripe.error.StripeError as exc:
            raise self._translate(exc, "create checkout session") from exc

        if not session.get("url"):
            raise GatewayError("Stripe returned a checkout session without a URL.")
        return CheckoutSession(id=session["id"], url=session["url"])

    # ---------- subscriptions ----------

    def list_active_subscriptions(self, customer_id):
        try:
            result = stripe.Subscription.list(
                customer=customer_id, status="active", limit=100
            )
        except stripe.error.StripeError as exc:
            raise self._translate(exc, "list subscriptions") from exc
        return [self._to_subscription(sub) for sub in result.get("data", [])]

    def retrieve_subscription(self, subscription_id):
        try:
            sub = stripe.Subscription.retrieve(subscription_id)
        except stripe.error.InvalidRequestError as exc:
            if self._is_missing(exc):
                return None
            raise self._translate(exc, "retrieve subscription") from exc
        except stripe.error.StripeError as exc:
            raise self._translate(exc, "retrieve subscription") from exc
        return self._to_subscription(sub)

    def cancel_subscription(self, subscription_id):
        try:
            stripe.Subscription.delete(subscription_id)
        except stripe.error.InvalidRequestError as exc:
            if self._is_missing(exc):
                logger.info("Subscription %s not found at Stripe.", subscription_id)
                return CANCEL_NOT_FOUND
            if "cancel" in str(exc).lower():
                logger.info("Subscription %s was already cancelled.", subscription_id)
                return CANCEL_ALREADY_CANCELLED
            raise self._translate(exc, "cancel subscription") from exc
        except stripe.error.StripeError as exc:
            raise self._translate(exc, "cancel subscription") from exc

        logger.info("Cancelled subscription %s at Stripe.", subscription_id)
        return CANCEL_CANCELLED

    # ---------- helpers ----------

    @staticmethod
    def _is_missing(exc: stripe.error.InvalidRequestError) -> bool:
        return getattr(exc, "code", None) == "resource_missing"

    @staticmethod
    def _translate(exc: stripe.error.StripeError, action: str) -> GatewayError:
        message = getattr(exc, "user_message", None) or str(exc)
        code = getattr(exc, "code", None)
        logger.warning("Stripe failed to %s: %s (code=%s)", action, message, code)
        if isinstance(exc, stripe.error.APIConnectionError):
            return GatewayUnavailable(message, code=code)
        return GatewayError(message, code=code)

    @staticmethod
    def _to_subscription(sub: Dict[str, Any]) -> GatewaySubscription:
        metadata = dict(sub.get("metadata") or {})
        items = (sub.get("items") or {}).get("data") or []
        price = items[0].get("price") if items else None
        plan = metadata.get("plan")
        if not plan and price:
            plan = price.get("lookup_key") or price.get("id")
        return GatewaySubscription(
            id=sub["id"],
            customer_id=sub.get("customer"),
            status=sub.get("status"),
            current_period_end=from_timestamp(sub.get("current_period_end")),
            plan=plan,
            price=from_minor_units(price.get("unit_amount")) if price else None,
            currency=price.get("currency") if price else None,
            metadata=metadata,
        )


def get_gateway() -> PaymentGateway:
    """Instantiate the gateway named by settings.PAYMENT_GATEWAY_CLASS."""
    return import_string(settings.PAYMENT_GATEWAY_CLASS)()

"""
Stripe Webhook Signal Handlers (version-agnostic)
=================================================

This module processes verified Stripe events that dj-stripe has already
validated and stored. We react to persisted `djstripe.models.Event` rows
using Django's `post_save` signal, which is stable across dj-stripe
versions, and hand the payload to the ledger services.

Handled event types (all idempotent):
- `checkout.session.completed`              → complete the event payment
  (or mark it processing while an async payment method settles)
- `checkout.session.async_payment_succeeded` → complete the event payment
- `checkout.session.async_payment_failed`    → fail the event payment
- `checkout.session.expired`                 → cancel the event payment
- `payment_intent.payment_failed`            → count a declined attempt
- `charge.refunded`                          → refund the event payment
- `invoice.payment_succeeded` / `invoice.paid` → record a subscription renewal
- `invoice.payment_failed`                   → record a failed renewal

Event payments are correlated through the `payment_id` the checkout
initiation wrote into the session and PaymentIntent metadata.

Safety:
- Never re-raise from the signal handler (prevents webhook retry storms).
- dj-stripe de-duplicates events; the ledger services are idempotent on
  top of that, so replays change nothing.

Author: Trading Academy Development Team
Version: 1.0.0
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from django.db.models.signals import post_save
from django.dispatch import receiver
from djstripe.models import Event

from events.exceptions import PaymentConflict
from events.services import webhook
from subscriptions.services import billing

logger = logging.getLogger(__name__)


# ---------- helpers ----------


def _extract_data_object(event: Event) -> Dict[str, Any]:
    """
    Extract the Stripe event's `data.object` payload from a dj-stripe Event.

    dj-stripe stores the raw Stripe JSON in `event.data`. Depending on the
    dj-stripe version the shape may vary, so both the standard
    `{"data": {"object": ...}}` and a top-level `object` are accepted.

    Returns:
        A dict representing the `data.object` (or `{}` if not found).
    """
    data = event.data or {}
    if not isinstance(data, dict):
        return {}
    inner = data.get("data")
    if isinstance(inner, dict) and isinstance(inner.get("object"), dict):
        return inner["object"]
    if isinstance(data.get("object"), dict):
        return data["object"]
    return {}


def _payment_id(obj: Dict[str, Any]) -> str:
    return (obj.get("metadata") or {}).get("payment_id") or ""


# ---------- signal entrypoint ----------


@receiver(post_save, sender=Event)
def on_djstripe_event_created(sender, instance: Event, created: bool, **kwargs):
    """
    Post-save hook for dj-stripe Event.

    Runs once for each *new* event saved by dj-stripe (after signature
    verification and de-dup). Never re-raises.
    """
    if not created:
        return

    event_type = instance.type
    obj = _extract_data_object(instance)
    handler = HANDLERS.get(event_type)

    logger.info("[webhook] %s (event_id=%s)", event_type, instance.id)
    if handler is None:
        logger.debug("Unhandled event type: %s", event_type)
        return

    try:
        handler(obj, event_id=instance.id)
    except PaymentConflict as exc:
        logger.error("Conflicting %s (event_id=%s): %s", event_type, instance.id, exc.detail)
    except Exception as exc:
        # Never re-raise: Stripe would retry the whole event
        logger.exception("Error handling event %s: %s", event_type, exc)


# ---------- concrete handlers ----------


def _handle_checkout_session_completed(session: Dict[str, Any], **kwargs) -> None:
    payment_id = _payment_id(session)
    if not payment_id:
        logger.debug("checkout.session.completed %s without payment_id", session.get("id"))
        return

    if session.get("payment_status") == "unpaid":
        # Delayed payment method: the money arrives with async_payment_succeeded
        webhook.mark_processing(payment_id)
        return

    webhook.complete_payment(
        payment_id,
        session.get("payment_intent"),
        session.get("receipt_url"),
    )


def _handle_async_payment_succeeded(session: Dict[str, Any], **kwargs) -> None:
    payment_id = _payment_id(session)
    if payment_id:
        webhook.complete_payment(payment_id, session.get("payment_intent"))


def _handle_async_payment_failed(session: Dict[str, Any], **kwargs) -> None:
    payment_id = _payment_id(session)
    if payment_id:
        webhook.fail_payment(payment_id, "Asynchronous payment failed")


def _handle_checkout_session_expired(session: Dict[str, Any], **kwargs) -> None:
    payment_id = _payment_id(session)
    if payment_id:
        webhook.cancel_payment(payment_id, "Checkout session expired")


def _handle_payment_intent_failed(payment_intent: Dict[str, Any], **kwargs) -> None:
    payment_id = _payment_id(payment_intent)
    if not payment_id:
        return
    error = payment_intent.get("last_payment_error") or {}
    webhook.record_failed_attempt(payment_id, error.get("message") or "Payment declined")


def _handle_charge_refunded(charge: Dict[str, Any], **kwargs) -> None:
    payment_intent_id = charge.get("payment_intent")
    if not payment_intent_id:
        logger.warning("charge.refunded %s without payment_intent", charge.get("id"))
        return
    # Partial refunds leave the charge paid, only full refunds leave the ledger
    if not charge.get("refunded"):
        logger.info("Partial refund on charge %s ignored by the ledger", charge.get("id"))
        return
    reasons = [r.get("reason") for r in (charge.get("refunds") or {}).get("data", [])]
    webhook.refund_payment(payment_intent_id, next((r for r in reasons if r), ""))


def _handle_invoice_paid(invoice: Dict[str, Any], *, event_id=None) -> None:
    billing.record_subscription_payment(invoice, event_id=event_id)


def _handle_invoice_payment_failed(invoice: Dict[str, Any], *, event_id=None) -> None:
    billing.record_payment_failure(invoice, event_id=event_id)


HANDLERS = {
    "checkout.session.completed": _handle_checkout_session_completed,
    "checkout.session.async_payment_succeeded": _handle_async_payment_succeeded,
    "checkout.session.async_payment_failed": _handle_async_payment_failed,
    "checkout.session.expired": _handle_checkout_session_expired,
    "payment_intent.payment_failed": _handle_payment_intent_failed,
    "charge.refunded": _handle_charge_refunded,
    "invoice.payment_succeeded": _handle_invoice_paid,
    "invoice.paid": _handle_invoice_paid,
    "invoice.payment_failed": _handle_invoice_payment_failed,
}

"""
Stripe Integration Package
==========================

Centralizes all Stripe-related logic of the academy backend.

- `dj-stripe` verifies and persists incoming webhook events; `signals.py`
  reacts to each new `djstripe.models.Event` and forwards it to the event
  payment ledger (`events.services.webhook`) or the subscription billing
  recorder (`subscriptions.services.billing`).
- `gateway.py` is the only place that calls the Stripe API: checkout
  sessions for event payments and subscription lookup/cancellation for
  the reconciliation sweeps. Everything else talks to the
  `PaymentGateway` interface.
- `testing.py` ships an in-memory gateway for tests.

Structure
---------
- apps.py         → App configuration (`StripeIntegrationConfig`)
- exceptions.py   → Gateway errors
- gateway.py      → `PaymentGateway`, `StripeGateway`, `get_gateway()`
- signals.py      → Webhook handlers (Event post-processing)
- testing.py      → `FakeGateway`

Author: Trading Academy Development Team
Version: 1.0.0
"""

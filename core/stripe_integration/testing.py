"""
In-memory payment gateway for tests.

`FakeGateway` records every call and answers from dictionaries the test
prepares. Failures are injected per operation:

    gateway = FakeGateway()
    gateway.fail_checkout = GatewayError("boom")
    gateway.cancel_errors["sub_1"] = GatewayError("rate limited")
    gateway.cancel_outcomes["sub_2"] = CANCEL_NOT_FOUND
"""

from __future__ import annotations

import itertools
from typing import Dict, List, Optional

from .gateway import (
    CANCEL_CANCELLED,
    CheckoutSession,
    GatewaySubscription,
    PaymentGateway,
)
from .exceptions import GatewayError


class FakeGateway(PaymentGateway):
    _counter = itertools.count(1)

    def __init__(self):
        self.checkout_sessions: List[dict] = []
        self.cancelled: List[str] = []
        self.listed_customers: List[str] = []
        self.subscriptions_by_customer: Dict[str, List[GatewaySubscription]] = {}
        self.subscriptions: Dict[str, GatewaySubscription] = {}
        self.cancel_outcomes: Dict[str, str] = {}
        self.cancel_errors: Dict[str, GatewayError] = {}
        self.list_errors: Dict[str, GatewayError] = {}
        self.retrieve_errors: Dict[str, GatewayError] = {}
        self.fail_checkout: Optional[GatewayError] = None

    def create_checkout_session(self, **kwargs):
        if self.fail_checkout is not None:
            raise self.fail_checkout
        session_id = f"cs_test_{next(self._counter)}"
        self.checkout_sessions.append({"id": session_id, **kwargs})
        return CheckoutSession(
            id=session_id, url=f"https://checkout.stripe.test/pay/{session_id}"
        )

    def list_active_subscriptions(self, customer_id):
        self.listed_customers.append(customer_id)
        if customer_id in self.list_errors:
            raise self.list_errors[customer_id]
        return list(self.subscriptions_by_customer.get(customer_id, []))

    def retrieve_subscription(self, subscription_id):
        if subscription_id in self.retrieve_errors:
            raise self.retrieve_errors[subscription_id]
        return self.subscriptions.get(subscription_id)

    def cancel_subscription(self, subscription_id):
        if subscription_id in self.cancel_errors:
            raise self.cancel_errors[subscription_id]
        self.cancelled.append(subscription_id)
        return self.cancel_outcomes.get(subscription_id, CANCEL_CANCELLED)

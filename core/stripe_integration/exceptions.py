"""
Gateway exceptions for core.stripe_integration.

Callers never see raw `stripe.error.*` classes. The Stripe gateway
translates them into these so services and views can handle gateway
failures without importing the SDK.
"""


class GatewayError(Exception):
    """
    An outbound call to the payment gateway failed.

    Attributes:
        code: Gateway error code when one was returned (e.g. "card_declined").
    """

    def __init__(self, message: str, *, code: str | None = None):
        super().__init__(message)
        self.code = code


class GatewayUnavailable(GatewayError):
    """The gateway could not be reached or did not answer within the timeout."""

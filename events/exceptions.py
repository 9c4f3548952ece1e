"""
Domain errors of the registration & payment ledger.

Every error carries the HTTP status the API answers with, so views can
translate them without a lookup table.
"""


class PaymentError(Exception):
    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class PaymentValidationError(PaymentError):
    """Bad amount, payment mode mismatch, invalid referral code."""


class EventNotFound(PaymentError):
    status_code = 404


class RegistrationNotFound(PaymentError):
    status_code = 404


class PaymentConflict(PaymentError):
    """Duplicate registration or a registration that is already fully paid."""

    status_code = 409


class InvalidPaymentTransition(PaymentError):
    status_code = 409

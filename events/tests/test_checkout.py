from decimal import Decimal

from django.test import TestCase

from affiliates.models import Affiliate
from core.stripe_integration.exceptions import GatewayError
from core.stripe_integration.testing import FakeGateway
from events.exceptions import (
    EventNotFound,
    PaymentConflict,
    PaymentValidationError,
    RegistrationNotFound,
)
from events.models import Event, EventPaymentTracker, EventRegistration
from events.services.checkout import (
    calculate_minimum_deposit,
    initiate_registration,
    make_payment,
    validate_installment_amount,
)
from events.services.webhook import complete_payment

from .helpers import make_event, make_registration


def initiate(event, gateway, **overrides):
    params = {
        "event_id": event.pk,
        "email": "Trader@Example.com",
        "first_name": "Ada",
        "last_name": "Lovelace",
        "amount": Decimal("500.00"),
        "gateway": gateway,
    }
    params.update(overrides)
    return initiate_registration(**params)


class InitiateRegistrationTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        cls.event = make_event()

    def setUp(self):
        self.gateway = FakeGateway()

    def test_deposit_creates_pending_registration_payment_and_session(self):
        result = initiate(self.event, self.gateway)

        registration = result.registration
        self.assertEqual(registration.email, "trader@example.com")
        self.assertEqual(registration.total_amount, Decimal("2999.99"))
        self.assertEqual(registration.total_paid, Decimal("0"))
        self.assertEqual(registration.remaining_balance, Decimal("2999.99"))
        self.assertEqual(registration.payment_status, EventRegistration.STATUS_PENDING)
        self.assertRegex(registration.registration_number, r"^REG-\d{8}-[A-Z2-9]{5}$")
        self.assertIsNotNone(registration.checkout_session_expires_at)

        payment = result.payment
        self.assertEqual(payment.status, EventPaymentTracker.STATUS_PENDING)
        self.assertEqual(payment.payment_type, EventPaymentTracker.TYPE_DEPOSIT)
        self.assertEqual(payment.new_balance, Decimal("2499.99"))

        session = self.gateway.checkout_sessions[0]
        self.assertEqual(session["amount"], Decimal("500.00"))
        self.assertEqual(session["metadata"]["payment_id"], payment.payment_id)
        self.assertEqual(session["metadata"]["registration_id"], str(registration.pk))
        self.assertEqual(payment.stripe_session_id, session["id"])
        self.assertEqual(result.checkout_url, f"https://checkout.stripe.test/pay/{session['id']}")

    def test_gateway_failure_rolls_back_registration(self):
        self.gateway.fail_checkout = GatewayError("Stripe is down")

        with self.assertRaises(GatewayError):
            initiate(self.event, self.gateway)

        self.assertFalse(EventRegistration.objects.exists())
        self.assertFalse(EventPaymentTracker.objects.exists())

    def test_unpaid_previous_registration_is_replaced(self):
        first = initiate(self.event, self.gateway)
        second = initiate(self.event, self.gateway, email="trader@example.com")

        self.assertNotEqual(first.registration.pk, second.registration.pk)
        self.assertEqual(EventRegistration.objects.count(), 1)
        self.assertFalse(
            EventPaymentTracker.objects.filter(payment_id=first.payment.payment_id).exists()
        )

    def test_paid_previous_registration_is_a_conflict(self):
        first = initiate(self.event, self.gateway)
        complete_payment(first.payment.payment_id, "pi_first")

        with self.assertRaises(PaymentConflict):
            initiate(self.event, self.gateway)
        self.assertEqual(EventRegistration.objects.count(), 1)

    def test_deposit_below_minimum_is_rejected(self):
        with self.assertRaises(PaymentValidationError):
            initiate(self.event, self.gateway, amount=Decimal("499.99"))
        self.assertEqual(self.gateway.checkout_sessions, [])
        self.assertFalse(EventRegistration.objects.exists())

    def test_amount_above_total_is_rejected(self):
        with self.assertRaises(PaymentValidationError):
            initiate(self.event, self.gateway, amount=Decimal("3000.00"))

    def test_partial_mode_requires_partial_event(self):
        event = make_event(payment_mode=Event.PAYMENT_MODE_FULL_ONLY)
        with self.assertRaises(PaymentValidationError):
            initiate(event, self.gateway)

    def test_full_mode_requires_the_whole_total(self):
        with self.assertRaises(PaymentValidationError):
            initiate(self.event, self.gateway, payment_mode=EventRegistration.MODE_FULL)

        result = initiate(
            self.event,
            self.gateway,
            payment_mode=EventRegistration.MODE_FULL,
            amount=Decimal("2999.99"),
        )
        self.assertEqual(result.payment.payment_type, EventPaymentTracker.TYPE_FULL)
        self.assertEqual(result.payment.new_balance, Decimal("0.00"))

    def test_unknown_or_inactive_event(self):
        inactive = make_event(is_active=False)
        with self.assertRaises(EventNotFound):
            initiate(inactive, self.gateway)
        with self.assertRaises(EventNotFound):
            initiate_registration(
                event_id=987654,
                email="a@example.com",
                first_name="A",
                last_name="B",
                amount=Decimal("500"),
                gateway=self.gateway,
            )

    def test_affiliate_code_discounts_the_total(self):
        Affiliate.objects.create(
            code="save10",
            name="Partner",
            discount_type=Affiliate.DISCOUNT_PERCENTAGE,
            discount_value=Decimal("10.00"),
        )
        result = initiate(self.event, self.gateway, affiliate_code="SAVE10")

        registration = result.registration
        self.assertEqual(registration.original_price, Decimal("2999.99"))
        self.assertEqual(registration.discount_amount, Decimal("300.00"))
        self.assertEqual(registration.total_amount, Decimal("2699.99"))
        self.assertEqual(registration.affiliate_code, "SAVE10")

    def test_unknown_affiliate_code_is_rejected(self):
        with self.assertRaises(PaymentValidationError):
            initiate(self.event, self.gateway, affiliate_code="NOPE")
        self.assertFalse(EventRegistration.objects.exists())


class MinimumDepositTests(TestCase):
    def test_flat_minimum_wins(self):
        event = make_event(minimum_deposit_amount=Decimal("250.00"), deposit_percentage=Decimal("50"))
        self.assertEqual(calculate_minimum_deposit(event), Decimal("250.00"))

    def test_percentage_when_no_flat_minimum(self):
        event = make_event(minimum_deposit_amount=Decimal("0"), deposit_percentage=Decimal("10"))
        self.assertEqual(calculate_minimum_deposit(event), Decimal("300.00"))

    def test_defaults_to_twenty_percent(self):
        event = make_event(minimum_deposit_amount=Decimal("0"), price=Decimal("1000.00"))
        self.assertEqual(calculate_minimum_deposit(event), Decimal("200.00"))


class InstallmentRuleTests(TestCase):
    def test_below_minimum_only_exact_remaining_is_accepted(self):
        self.assertEqual(
            validate_installment_amount(Decimal("80"), Decimal("80.00"), Decimal("100")),
            Decimal("80.00"),
        )
        with self.assertRaises(PaymentValidationError):
            validate_installment_amount(Decimal("50"), Decimal("80.00"), Decimal("100"))
        with self.assertRaises(PaymentValidationError):
            validate_installment_amount(Decimal("79.99"), Decimal("80.00"), Decimal("100"))

    def test_regular_installment_bounds(self):
        self.assertEqual(
            validate_installment_amount("150", Decimal("500.00"), Decimal("100")),
            Decimal("150.00"),
        )
        with self.assertRaises(PaymentValidationError):
            validate_installment_amount("99.99", Decimal("500.00"), Decimal("100"))
        with self.assertRaises(PaymentValidationError):
            validate_installment_amount("500.01", Decimal("500.00"), Decimal("100"))

    def test_float_input_compares_at_two_decimals(self):
        self.assertEqual(
            validate_installment_amount(0.1 + 0.7, Decimal("0.80"), Decimal("100")),
            Decimal("0.80"),
        )


class MakePaymentTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        cls.event = make_event(minimum_installment_amount=Decimal("100.00"))

    def setUp(self):
        self.gateway = FakeGateway()
        self.registration = make_registration(
            self.event,
            total="300.00",
            total_paid=Decimal("220.00"),
            remaining_balance=Decimal("80.00"),
            payment_status=EventRegistration.STATUS_PARTIAL,
        )

    def test_exact_remaining_below_minimum_is_the_final_payment(self):
        result = make_payment(self.registration.pk, "80", gateway=self.gateway)

        self.assertEqual(result.payment.payment_type, EventPaymentTracker.TYPE_FINAL)
        self.assertEqual(result.payment.previous_balance, Decimal("80.00"))
        self.assertEqual(result.payment.new_balance, Decimal("0.00"))
        self.assertEqual(result.payment.stripe_session_id, self.gateway.checkout_sessions[0]["id"])

    def test_partial_amount_below_minimum_is_rejected(self):
        with self.assertRaises(PaymentValidationError):
            make_payment(self.registration.pk, "50", gateway=self.gateway)
        self.assertEqual(self.gateway.checkout_sessions, [])

    def test_installment_type_when_balance_remains(self):
        registration = make_registration(
            self.event, email="other@example.com", total="1000.00"
        )
        result = make_payment(registration.pk, "250", gateway=self.gateway)
        self.assertEqual(result.payment.payment_type, EventPaymentTracker.TYPE_INSTALLMENT)

    def test_gateway_failure_leaves_no_pending_record(self):
        self.gateway.fail_checkout = GatewayError("timeout")
        with self.assertRaises(GatewayError):
            make_payment(self.registration.pk, "80", gateway=self.gateway)
        self.assertFalse(self.registration.payments.exists())

    def test_fully_paid_registration_is_a_conflict(self):
        registration = make_registration(
            self.event,
            email="paid@example.com",
            total="300.00",
            total_paid=Decimal("300.00"),
            remaining_balance=Decimal("0.00"),
            is_fully_paid=True,
            payment_status=EventRegistration.STATUS_PAID,
        )
        with self.assertRaises(PaymentConflict):
            make_payment(registration.pk, "10", gateway=self.gateway)

    def test_unknown_registration(self):
        with self.assertRaises(RegistrationNotFound):
            make_payment("00000000-0000-0000-0000-000000000000", "80", gateway=self.gateway)

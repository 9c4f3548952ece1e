from decimal import Decimal

from django.test import TestCase

from affiliates.models import Affiliate, Commission
from affiliates.services import (
    InvalidAffiliateCode,
    create_commission_for_registration,
    resolve_discount,
)
from events.tests.helpers import make_event, make_registration


class ResolveDiscountTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        Affiliate.objects.create(
            code=" percent ",
            name="Percent Partner",
            discount_type=Affiliate.DISCOUNT_PERCENTAGE,
            discount_value=Decimal("15.00"),
        )
        Affiliate.objects.create(
            code="FLAT",
            name="Flat Partner",
            discount_type=Affiliate.DISCOUNT_FIXED,
            discount_value=Decimal("250.00"),
        )
        Affiliate.objects.create(code="RETIRED", name="Old Partner", is_active=False)

    def test_codes_are_stored_upper_case(self):
        self.assertTrue(Affiliate.objects.filter(code="PERCENT").exists())

    def test_percentage_discount(self):
        self.assertEqual(resolve_discount("percent", Decimal("999.99")), Decimal("150.00"))

    def test_fixed_discount_is_capped_to_the_price(self):
        self.assertEqual(resolve_discount("FLAT", Decimal("1000.00")), Decimal("250.00"))
        self.assertEqual(resolve_discount("FLAT", Decimal("100.00")), Decimal("100.00"))

    def test_unknown_and_inactive_codes(self):
        for code in ("NOPE", "RETIRED", "", None):
            with self.assertRaises(InvalidAffiliateCode):
                resolve_discount(code, Decimal("100.00"))


class CommissionTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        cls.affiliate = Affiliate.objects.create(
            code="MENTOR", name="Mentor", commission_rate=Decimal("12.50")
        )
        cls.event = make_event()

    def test_commission_is_created_once(self):
        registration = make_registration(
            self.event, total="1000.00", total_paid=Decimal("1000.00"), affiliate_code="mentor"
        )

        commission = create_commission_for_registration(registration)

        self.assertEqual(commission.affiliate, self.affiliate)
        self.assertEqual(commission.base_amount, Decimal("1000.00"))
        self.assertEqual(commission.amount, Decimal("125.00"))
        self.assertEqual(commission.status, Commission.STATUS_PENDING)
        self.assertIsNone(create_commission_for_registration(registration))
        self.assertEqual(Commission.objects.count(), 1)

    def test_registration_without_known_code(self):
        plain = make_registration(self.event, email="plain@example.com")
        unknown = make_registration(self.event, email="unknown@example.com", affiliate_code="GHOST")

        self.assertIsNone(create_commission_for_registration(plain))
        self.assertIsNone(create_commission_for_registration(unknown))
        self.assertFalse(Commission.objects.exists())

"""
Referral discounts and commissions.

The discount is resolved at checkout initiation and baked into the
registration total. The commission is created once, when the referred
registration becomes fully paid.
"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from django.db import IntegrityError, transaction

from .models import Affiliate, Commission

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


class InvalidAffiliateCode(Exception):
    pass


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def get_active_affiliate(code: Optional[str]) -> Affiliate:
    """
    Raises:
        InvalidAffiliateCode: for unknown or inactive codes.
    """
    code = normalize_code(code)
    affiliate = Affiliate.objects.filter(code=code, is_active=True).first() if code else None
    if affiliate is None:
        raise InvalidAffiliateCode(f"Invalid referral code '{code}'.")
    return affiliate


def resolve_discount(code: str, price) -> Decimal:
    """Discount the code grants on `price`, never more than the price itself."""
    affiliate = get_active_affiliate(code)
    price = Decimal(price)
    if affiliate.discount_type == Affiliate.DISCOUNT_PERCENTAGE:
        discount = price * affiliate.discount_value / Decimal(100)
    else:
        discount = Decimal(affiliate.discount_value)
    discount = max(Decimal("0.00"), min(discount, price))
    return discount.quantize(CENT, rounding=ROUND_HALF_UP)


def create_commission_for_registration(registration) -> Optional[Commission]:
    """
    Create the commission of a fully paid referred registration.

    Returns None if the registration has no usable code or already has
    its commission.
    """
    code = normalize_code(registration.affiliate_code)
    if not code:
        return None
    affiliate = Affiliate.objects.filter(code=code).first()
    if affiliate is None:
        logger.warning(
            "Registration %s references unknown affiliate %s",
            registration.registration_number,
            code,
        )
        return None

    base = Decimal(registration.total_paid)
    amount = (base * affiliate.commission_rate / Decimal(100)).quantize(
        CENT, rounding=ROUND_HALF_UP
    )
    try:
        with transaction.atomic():
            commission, created = Commission.objects.get_or_create(
                registration=registration,
                defaults={
                    "affiliate": affiliate,
                    "base_amount": base,
                    "commission_rate": affiliate.commission_rate,
                    "amount": amount,
                },
            )
    except IntegrityError:
        # A concurrent delivery created it first
        return None
    if not created:
        return None
    logger.info(
        "Commission %s for %s created from registration %s",
        amount,
        affiliate.code,
        registration.registration_number,
    )
    return commission

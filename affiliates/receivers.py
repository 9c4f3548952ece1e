from django.dispatch import receiver

from events.signals import registration_fully_paid

from .services import create_commission_for_registration


@receiver(registration_fully_paid, dispatch_uid="affiliates_commission_on_fully_paid")
def create_commission(sender, registration, **kwargs):
    if registration.affiliate_code:
        create_commission_for_registration(registration)

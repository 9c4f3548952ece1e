"""
Signals sent by the events app.

`registration_fully_paid` fires once per registration, right after the
payment that settled its balance committed. Receivers get the
registration as `registration=`. It is sent with `send_robust()`, so a
failing receiver (e.g. commission creation) is logged and never affects
the payment.
"""

from django.dispatch import Signal

registration_fully_paid = Signal()

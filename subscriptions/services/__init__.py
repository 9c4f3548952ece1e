"""
Subscription services.

- history:        audit log writer and entry lookups shared by the others
- billing:        invoice webhooks -> SubscriptionPayment + entry + history
- reconciliation: the scheduled sweeps that converge on the gateway state
"""

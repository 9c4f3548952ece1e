"""
Registration & payment services.

- ledger:         pure balance computation and the shared recompute path
- checkout:       checkout initiation and additional payments
- webhook:        payment completion, failures and refunds
- cleanup:        abandoned-checkout collector
- recalculation:  admin repair tools
- reporting:      read-side queries (balance, history, search, summaries)
- notifications:  best-effort emails
"""

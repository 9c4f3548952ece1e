"""Errors of the subscriptions app."""


class ImmutableRecordError(Exception):
    """An append-only audit row was about to be changed or deleted."""

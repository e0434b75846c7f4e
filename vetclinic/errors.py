"""
vetclinic/errors.py
-------------------
Domain errors raised by the sales ledger and its services.

They subclass ValueError so route handlers can treat every business-rule
rejection the same way: roll back, log a warning, answer 400.
"""


class SaleError(ValueError):
    """Base error for sale creation, update and cancellation rules."""


class PaymentError(SaleError):
    """A payment cannot be applied to the sale in its current state."""


class StockError(SaleError):
    """Inventory cannot satisfy the requested quantity."""

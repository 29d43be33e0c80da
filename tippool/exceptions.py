class TipPoolError(Exception):
    """Base exception for tippool."""


class ConfigurationError(TipPoolError):
    """Raised when the roster or required settings are missing or invalid."""


class StoreError(TipPoolError):
    """Raised when the history store rejects a write."""


class DeliveryError(TipPoolError):
    """Raised when the email relay refuses a message."""

"""
Delivery error taxonomy.

These are raised inside the delivery subsystem and converted into a failed
EmailResult at the EmailDeliveryService boundary. Callers of ``send()``
never see them.
"""

from typing import Optional


class DeliveryError(Exception):
    """Base class for delivery subsystem failures."""
    pass


class StoreUnavailableError(DeliveryError):
    """Raised when the delivery store cannot be read or written."""
    pass


class TransportError(DeliveryError):
    """Raised when the email transport reports failure, raises or times out."""

    def __init__(self, message: str, error_code: Optional[str] = None):
        self.error_code = error_code
        super().__init__(message)


class RetryExhaustedError(DeliveryError):
    """Raised when an attempt would exceed the configured maximum."""

    def __init__(self, idempotency_key: str, attempt_number: int, max_attempts: int):
        self.idempotency_key = idempotency_key
        self.attempt_number = attempt_number
        self.max_attempts = max_attempts
        super().__init__(
            f"Attempt {attempt_number} for '{idempotency_key}' exceeds "
            f"the maximum of {max_attempts}."
        )

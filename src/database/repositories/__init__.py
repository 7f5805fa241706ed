"""Repository implementations for delivery bookkeeping."""

from .delivery_repository import DeliveryRepository
from .memory_repository import InMemoryDeliveryRepository

__all__ = [
    "DeliveryRepository",
    "InMemoryDeliveryRepository",
]

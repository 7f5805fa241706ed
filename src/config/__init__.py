"""Configuration module for the notification delivery subsystem."""

from .database import DatabaseSettings, get_database_settings
from .settings import (
    CelerySettings,
    DeliverySettings,
    RedisSettings,
    Settings,
    get_delivery_settings,
    get_settings,
)

__all__ = [
    "DatabaseSettings",
    "get_database_settings",
    "DeliverySettings",
    "get_delivery_settings",
    "RedisSettings",
    "CelerySettings",
    "Settings",
    "get_settings",
]

"""Adapter modules for external integrations."""

from .mqtt import (
    MQTTClient,
    MQTTConnectionError,
    build_user_properties,
    extract_user_properties,
)

__all__ = [
    "MQTTClient",
    "MQTTConnectionError",
    "build_user_properties",
    "extract_user_properties",
]

"""Push notifications to the owning user's devices."""

from .gateway import HttpPushGateway, PushDeliveryError, build_multicast_payload
from .notifier import INVALID_TOKEN_CODES, PushNotifier

__all__ = [
    "HttpPushGateway",
    "INVALID_TOKEN_CODES",
    "PushDeliveryError",
    "PushNotifier",
    "build_multicast_payload",
]

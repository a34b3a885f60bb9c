"""
Cloud - Publish Sink (MQTT)
"""
from .base import (
    CloudClient,
    CloudClientListener,
    CloudConnectionError,
    CloudError,
    CloudPublishError,
    CloudService,
)
from .mqtt import MqttCloudClient, MqttCloudService

__all__ = [
    "CloudClient",
    "CloudClientListener",
    "CloudConnectionError",
    "CloudError",
    "CloudPublishError",
    "CloudService",
    "MqttCloudClient",
    "MqttCloudService",
]

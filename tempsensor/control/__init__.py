"""
Control Plane - MQTT Commands
"""
from .plane import MQTTControlPlane
from .registry import CommandRegistry, CommandNotAvailableError

__all__ = ["MQTTControlPlane", "CommandRegistry", "CommandNotAvailableError"]

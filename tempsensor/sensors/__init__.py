"""
Sensor Sources
==============

Fuentes de lecturas de sensores consumidas por el TemperatureSensor.
"""
from .base import SensorReading, SensorReadError, SensorSource
from .w1 import W1SensorSource, parse_w1_slave

__all__ = [
    'SensorReading',
    'SensorReadError',
    'SensorSource',
    'W1SensorSource',
    'parse_w1_slave',
]

"""
Configuration Module
====================

Provides configuration loading with Pydantic validation.

Usage:
    from tempsensor.config import TempSensorConfig, ComponentProperties
    config = TempSensorConfig.from_yaml("config/tempsensor/config.yaml")
    props = config.component_properties()
"""
from .schemas import (
    ComponentProperties,
    TempSensorConfig,
    MQTTSettings,
    MQTTBrokerSettings,
    MQTTTopicsSettings,
    MQTTQoSSettings,
    SensorSettings,
    LoggingSettings,
    PUBLISH_RATE_PROP_NAME,
    PUBLISH_TOPIC_PROP_NAME,
    PUBLISH_QOS_PROP_NAME,
    PUBLISH_RETAIN_PROP_NAME,
)

__all__ = [
    'ComponentProperties',
    'TempSensorConfig',
    'MQTTSettings',
    'MQTTBrokerSettings',
    'MQTTTopicsSettings',
    'MQTTQoSSettings',
    'SensorSettings',
    'LoggingSettings',
    'PUBLISH_RATE_PROP_NAME',
    'PUBLISH_TOPIC_PROP_NAME',
    'PUBLISH_QOS_PROP_NAME',
    'PUBLISH_RETAIN_PROP_NAME',
]

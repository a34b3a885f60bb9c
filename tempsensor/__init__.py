"""
tempsensor - 1-Wire Temperature Publisher
=========================================

Lee periódicamente sensores de temperatura 1-Wire y publica la lectura
agregada vía MQTT a un rate configurable.

Public API:
- TemperatureSensor: Componente (activate/updated/deactivate/publish_once)
- ComponentProperties: Snapshot inmutable de propiedades
- TempSensorConfig: Configuración del host
- MqttCloudService: Publish sink sobre paho-mqtt
- W1SensorSource: Sensores 1-Wire vía sysfs

Usage:
    # Run host
    python -m tempsensor --config config/tempsensor/config.yaml

    # Or programmatically
    from tempsensor import TemperatureSensor, MqttCloudService, W1SensorSource

    service = MqttCloudService(broker_host="localhost")
    service.connect()
    component = TemperatureSensor(service, W1SensorSource())
    component.activate({"publish.rate": 60, "publish.semanticTopic": "data"})
"""

__version__ = "1.0.0"

from .config import ComponentProperties, TempSensorConfig
from .component import TemperatureSensor, ComponentActivationError, format_payload, format_reading
from .cloud import MqttCloudService, CloudPublishError, CloudConnectionError
from .sensors import SensorReading, SensorReadError, W1SensorSource
from .scheduling import FixedRateScheduler

__all__ = [
    # Config
    "ComponentProperties",
    "TempSensorConfig",
    # Component
    "TemperatureSensor",
    "ComponentActivationError",
    "format_payload",
    "format_reading",
    # Cloud
    "MqttCloudService",
    "CloudPublishError",
    "CloudConnectionError",
    # Sensors
    "SensorReading",
    "SensorReadError",
    "W1SensorSource",
    # Scheduling
    "FixedRateScheduler",
]

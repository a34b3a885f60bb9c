"""
Pydantic Configuration Schemas
================================

Type-safe configuration validation usando Pydantic v2.

Dos niveles de configuración:
- ComponentProperties: snapshot inmutable de las propiedades del componente
  (publish.rate, publish.semanticTopic, publish.qos, publish.retain).
  Se reemplaza entero en cada update, nunca se muta.
- TempSensorConfig: configuración del host (broker MQTT, sensores, logging)
  cargada desde YAML.

Usage:
    config = TempSensorConfig.from_yaml("config/tempsensor/config.yaml")
    props = ComponentProperties.from_properties(config.component)
"""
from typing import Any, Dict, List, Literal, Mapping, Optional
from pathlib import Path
from pydantic import BaseModel, ConfigDict, Field, PositiveInt, field_validator
import os


# ============================================================================
# Component Properties (snapshot inmutable)
# ============================================================================

PUBLISH_RATE_PROP_NAME = "publish.rate"
PUBLISH_TOPIC_PROP_NAME = "publish.semanticTopic"
PUBLISH_QOS_PROP_NAME = "publish.qos"
PUBLISH_RETAIN_PROP_NAME = "publish.retain"


class ComponentProperties(BaseModel):
    """
    Propiedades del componente TemperatureSensor.

    Las keys son las mismas que entrega el host (con puntos). La ausencia
    de publish.rate significa "sin schedule activo", no es un error.
    """
    model_config = ConfigDict(
        frozen=True,
        extra='allow',
        populate_by_name=True,
        strict=True,
    )

    publish_rate: Optional[PositiveInt] = Field(
        default=None,
        alias=PUBLISH_RATE_PROP_NAME,
        description="Publish rate in seconds (absent = no schedule)"
    )
    publish_topic: str = Field(
        default="data",
        alias=PUBLISH_TOPIC_PROP_NAME,
        description="Application topic for the readings"
    )
    publish_qos: Literal[0, 1, 2] = Field(
        default=0,
        alias=PUBLISH_QOS_PROP_NAME,
        description="MQTT QoS for the readings"
    )
    publish_retain: bool = Field(
        default=False,
        alias=PUBLISH_RETAIN_PROP_NAME,
        description="MQTT retain flag for the readings"
    )

    @classmethod
    def from_properties(cls, properties: Mapping[str, Any]) -> 'ComponentProperties':
        """
        Construye el snapshot desde el property map del host.

        Raises:
            ValidationError: Si algún valor presente es inválido (ej: rate <= 0)
        """
        return cls.model_validate(dict(properties))

    @property
    def has_publish_rate(self) -> bool:
        """True si el property map traía publish.rate."""
        return self.publish_rate is not None

    def as_properties(self) -> Dict[str, Any]:
        """Property map plano con las keys del host (para logging/echo)."""
        return self.model_dump(by_alias=True, exclude_none=True)


# ============================================================================
# MQTT Configuration
# ============================================================================

class MQTTBrokerSettings(BaseModel):
    """MQTT broker connection settings"""
    host: str = Field(
        default="localhost",
        description="MQTT broker hostname"
    )
    port: int = Field(
        default=1883,
        ge=1,
        le=65535,
        description="MQTT broker port"
    )
    username: Optional[str] = Field(
        default=None,
        description="MQTT username (optional, from env)"
    )
    password: Optional[str] = Field(
        default=None,
        description="MQTT password (optional, from env)"
    )
    keepalive: int = Field(
        default=60,
        ge=5,
        description="MQTT keepalive in seconds"
    )
    client_id: str = Field(
        default="tempsensor",
        min_length=1,
        description="MQTT client id"
    )


class MQTTTopicsSettings(BaseModel):
    """MQTT topic configuration"""
    prefix: str = Field(
        default="tempsensor",
        description="Namespace prepended to application topics: <prefix>/<app_id>/<topic>"
    )
    control_commands: str = Field(
        default="tempsensor/control/commands",
        description="Control commands topic"
    )
    control_status: str = Field(
        default="tempsensor/control/status",
        description="Control status topic"
    )

    @field_validator('prefix')
    @classmethod
    def validate_prefix(cls, v: str) -> str:
        """Prefix no debe contener wildcards MQTT"""
        if '#' in v or '+' in v:
            raise ValueError(f"prefix must not contain MQTT wildcards, got {v!r}")
        return v.strip('/')


class MQTTQoSSettings(BaseModel):
    """MQTT QoS levels"""
    control: Literal[0, 1, 2] = Field(
        default=1,
        description="Control plane QoS (recommended: 1 for reliability)"
    )


class MQTTSettings(BaseModel):
    """Complete MQTT configuration"""
    broker: MQTTBrokerSettings = Field(default_factory=MQTTBrokerSettings)
    topics: MQTTTopicsSettings = Field(default_factory=MQTTTopicsSettings)
    qos: MQTTQoSSettings = Field(default_factory=MQTTQoSSettings)
    connect_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Seconds to wait for the broker CONNACK"
    )


# ============================================================================
# Sensors Configuration
# ============================================================================

class SensorSettings(BaseModel):
    """1-Wire sensor bus settings"""
    w1_devices_path: str = Field(
        default="/sys/bus/w1/devices",
        description="w1 sysfs devices directory"
    )
    families: List[str] = Field(
        default_factory=lambda: ["28", "10", "22", "3b", "42"],
        min_length=1,
        description="1-Wire family codes treated as thermometers"
    )

    @field_validator('families')
    @classmethod
    def normalize_families(cls, v: List[str]) -> List[str]:
        """Family codes son 2 dígitos hex, en minúscula"""
        normalized = []
        for family in v:
            family = family.strip().lower()
            if len(family) != 2 or any(c not in "0123456789abcdef" for c in family):
                raise ValueError(f"family code must be 2 hex digits, got {family!r}")
            normalized.append(family)
        return normalized


# ============================================================================
# Logging Configuration
# ============================================================================

class LoggingSettings(BaseModel):
    """Logging configuration (JSON structured logging)"""
    level: Literal['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'] = Field(
        default='INFO',
        description="Log level"
    )
    json_indent: Optional[int] = Field(
        default=None,
        ge=0,
        le=4,
        description="JSON indent for pretty-print (None=compact, 2=readable)"
    )
    paho_level: Literal['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'] = Field(
        default='WARNING',
        description="Paho MQTT library log level"
    )
    file: Optional[str] = Field(
        default=None,
        description="Path to log file (None=stdout). If specified, enables file rotation."
    )
    max_bytes: int = Field(
        default=10485760,  # 10 MB
        ge=1024,
        description="Maximum bytes per log file before rotation (default 10 MB)"
    )
    backup_count: int = Field(
        default=5,
        ge=0,
        description="Number of backup log files to keep"
    )


# ============================================================================
# Root Configuration
# ============================================================================

class TempSensorConfig(BaseModel):
    """
    Root configuration with full validation.

    Loads from YAML and validates all settings.
    Environment variables override YAML for sensitive data.
    """
    mqtt: MQTTSettings = Field(default_factory=MQTTSettings)
    sensors: SensorSettings = Field(default_factory=SensorSettings)
    component: Dict[str, Any] = Field(
        default_factory=lambda: {
            PUBLISH_RATE_PROP_NAME: 60,
            PUBLISH_TOPIC_PROP_NAME: "data",
            PUBLISH_QOS_PROP_NAME: 0,
            PUBLISH_RETAIN_PROP_NAME: False,
        },
        description="Initial TemperatureSensor property map (dotted keys)"
    )
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @field_validator('component')
    @classmethod
    def validate_component_properties(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        """Valida el property map en load time (fail fast)"""
        ComponentProperties.from_properties(v)
        return v

    @classmethod
    def from_yaml(cls, config_path: str) -> 'TempSensorConfig':
        """
        Load and validate configuration from YAML file.

        Args:
            config_path: Path to config.yaml

        Returns:
            Validated TempSensorConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValidationError: If config is invalid
        """
        import yaml

        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create it from config/tempsensor/config.yaml.example"
            )

        with open(config_file, 'r') as f:
            config_dict = yaml.safe_load(f) or {}

        # Override sensitive data from environment variables
        broker = config_dict.setdefault('mqtt', {}).setdefault('broker', {})
        if os.getenv('MQTT_USERNAME'):
            broker['username'] = os.getenv('MQTT_USERNAME')
        if os.getenv('MQTT_PASSWORD'):
            broker['password'] = os.getenv('MQTT_PASSWORD')

        return cls(**config_dict)

    def component_properties(self) -> ComponentProperties:
        """Snapshot inicial de propiedades del componente."""
        return ComponentProperties.from_properties(self.component)

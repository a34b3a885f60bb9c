"""
TemperatureSensor Component
===========================

Lee los sensores de temperatura y publica una lectura agregada al broker a
un rate configurable.

Flujo:
    activate/updated (property map)
      → cancela el schedule anterior
      → si hay publish.rate: schedule fixed-rate (delay 0, period = rate)
      → cada tick: publish_once() → lee sensores → formatea → publica

Errores:
- Activación (no hay cloud client): fatal, ComponentActivationError
- Sin publish.rate: no hay schedule (no es error)
- Lectura de sensores / publish fallidos: se loggean, el tick termina,
  el siguiente tick no se ve afectado
"""
from threading import RLock
from typing import Any, Iterable, Mapping, Optional

from .cloud import CloudClient, CloudClientListener, CloudService
from .config import ComponentProperties
from .scheduling import FixedRateScheduler, ScheduledTask, interrupted
from .sensors import SensorReading, SensorSource
from .logging import (
    trace_context,
    generate_trace_id,
    log_error_with_context,
    log_sensor_readings,
    get_component_logger,
)

logger = get_component_logger("temperature_sensor")

APP_ID = "TemperatureSensor"

# Prioridad de publicación de las lecturas (0 = máxima)
PUBLISH_PRIORITY = 1


class ComponentActivationError(RuntimeError):
    """La activación del componente falló; la causa queda en __cause__."""
    pass


def format_reading(reading: SensorReading) -> str:
    """Segmento de payload: <quantity>(<id>):<value .2f><unit>"""
    return f"{reading.quantity}({reading.id}):{reading.value:3.2f}{reading.unit}"


def format_payload(readings: Iterable[SensorReading]) -> str:
    """
    Concatena los segmentos de cada lectura, sin separador.

    El formato sin delimitador es el que esperan los consumidores actuales.
    """
    return "".join(format_reading(r) for r in readings)


class TemperatureSensor(CloudClientListener):
    """
    Componente publicador de temperatura.

    Responsabilidad:
    - Mantener el snapshot de configuración (se reemplaza entero)
    - Mantener como máximo un schedule activo
    - Publicar 0 o 1 mensajes por tick

    Los callbacks de CloudClientListener quedan no-op (heredados).

    Usage:
        component = TemperatureSensor(cloud_service, W1SensorSource())
        component.activate({"publish.rate": 60, "publish.semanticTopic": "data",
                            "publish.qos": 0, "publish.retain": False})
        ...
        component.updated({...})
        component.deactivate()
    """

    def __init__(
        self,
        cloud_service: CloudService,
        sensor_source: SensorSource,
        scheduler: Optional[FixedRateScheduler] = None,
    ):
        self._cloud_service = cloud_service
        self._sensor_source = sensor_source
        self._worker = scheduler if scheduler is not None else FixedRateScheduler(name=APP_ID)

        self._cloud_client: Optional[CloudClient] = None
        self._handle: Optional[ScheduledTask] = None
        self._properties: Optional[ComponentProperties] = None
        # Serializa apply/deactivate: como máximo un handle vivo
        self._lock = RLock()

    # ========================================================================
    # Estado
    # ========================================================================

    @property
    def properties(self) -> Optional[ComponentProperties]:
        return self._properties

    @property
    def cloud_client(self) -> Optional[CloudClient]:
        return self._cloud_client

    @property
    def is_scheduled(self) -> bool:
        return self._handle is not None and not self._handle.done

    # ========================================================================
    # Lifecycle hooks
    # ========================================================================

    def activate(self, properties: Mapping[str, Any]):
        """
        Activa el componente.

        Obtiene el cloud client, se registra como listener y aplica la
        configuración inicial. No se suscribe a topics: las suscripciones
        por defecto ya las maneja el host.

        Raises:
            ComponentActivationError: Si cualquier paso falla
        """
        logger.info("🚀 Activating Temp Sensor...")
        self._log_properties("activate", properties)

        try:
            logger.info(f"Getting CloudClient for {APP_ID}...")
            self._cloud_client = self._cloud_service.new_cloud_client(APP_ID)
            self._cloud_client.add_cloud_client_listener(self)

            self.apply(properties)
        except Exception as e:
            log_error_with_context(
                logger,
                message="❌ Error during component activation",
                exception=e,
                component="temperature_sensor",
                event="activation_failed",
                app_id=APP_ID,
            )
            self._release_cloud_client()
            raise ComponentActivationError(f"Activation of {APP_ID} failed: {e}") from e

        logger.info("✅ Activating Temp Sensor... Done.")

    def updated(self, properties: Mapping[str, Any]):
        """Aplica un nuevo property map (reprograma el publish)."""
        logger.info("🔄 Updated Temp Sensor...")
        self._log_properties("update", properties)

        self.apply(properties)
        logger.info("✅ Updated Temp Sensor... Done.")

    def deactivate(self):
        """
        Desactiva el componente.

        Apaga el scheduler (el tick en curso queda interrumpido y se espera
        a que termine) y libera el cloud client. Después de retornar no hay
        más publicaciones.
        """
        logger.debug("Deactivating Temp Sensor...")

        with self._lock:
            self._worker.shutdown(wait=True)
            self._handle = None

        self._release_cloud_client()

        logger.debug("Deactivating Temp Sensor... Done.")

    def _release_cloud_client(self):
        cloud_client = self._cloud_client
        if cloud_client is None:
            return

        logger.info(f"Releasing CloudClient for {APP_ID}...")
        self._cloud_client = None
        cloud_client.remove_cloud_client_listener(self)
        cloud_client.release()

    # ========================================================================
    # Configuration Handler
    # ========================================================================

    def apply(self, properties: Mapping[str, Any]):
        """
        Cancela el schedule anterior, guarda el snapshot y (re)programa el publish.

        El schedule anterior se cancela antes de validar: un property map
        inválido deja el componente sin schedule, nunca publicando con la
        configuración vieja.

        Raises:
            ValidationError: Si el property map trae valores inválidos
        """
        with self._lock:
            if self._handle is not None:
                self._handle.cancel(interrupt=True)
                self._handle = None

            snapshot = (
                properties if isinstance(properties, ComponentProperties)
                else ComponentProperties.from_properties(properties)
            )
            self._properties = snapshot

            if not snapshot.has_publish_rate:
                logger.info(
                    "Update Temp Sensor - Ignore as properties do not contain publish.rate.",
                    extra={
                        "component": "temperature_sensor",
                        "event": "schedule_skipped",
                        "reason": "no_publish_rate",
                    }
                )
                return

            self._handle = self._worker.schedule_at_fixed_rate(
                self.publish_once,
                initial_delay=0,
                period=snapshot.publish_rate,
            )

        logger.info(
            f"⏱️ Publicando cada {snapshot.publish_rate}s",
            extra={
                "component": "temperature_sensor",
                "event": "schedule_started",
                "publish_rate": snapshot.publish_rate,
            }
        )

    # ========================================================================
    # Publish Cycle
    # ========================================================================

    def publish_once(self):
        """
        Un ciclo de publicación (llamado por el scheduler en cada tick).

        Nunca lanza: errores de sensores o de publish se loggean.
        """
        props = self._properties
        cloud_client = self._cloud_client
        if props is None or cloud_client is None:
            return

        topic = props.publish_topic
        qos = props.publish_qos
        retain = props.publish_retain

        with trace_context(generate_trace_id("tick")):
            logger.info(f"topic: {topic}, qos: {qos}, retain: {retain}")

            try:
                readings = list(self._sensor_source.list_sensors())
            except OSError as e:
                log_error_with_context(
                    logger,
                    message="❌ Error leyendo sensores",
                    exception=e,
                    component="temperature_sensor",
                    event="sensor_read_failed",
                    sensor_source=self._sensor_source.name,
                )
                return

            log_sensor_readings(logger, readings, source=self._sensor_source.name)

            payload = format_payload(readings)
            if not payload:
                logger.debug(
                    "Sin lecturas, no se publica",
                    extra={"component": "temperature_sensor", "event": "publish_skipped"}
                )
                return

            if interrupted():
                logger.info(
                    "⏹️ Tick interrumpido, no se publica",
                    extra={"component": "temperature_sensor", "event": "publish_interrupted"}
                )
                return

            payload_bytes = payload.encode("utf-8")
            try:
                cloud_client.publish(topic, payload_bytes, qos, retain, PUBLISH_PRIORITY)
                logger.info(
                    f"Published to {topic} message: {payload}",
                    extra={
                        "component": "temperature_sensor",
                        "event": "published",
                        "topic": topic,
                        "payload_size_bytes": len(payload_bytes),
                    }
                )
            except Exception as e:
                log_error_with_context(
                    logger,
                    message=f"❌ Cannot publish topic: {topic}",
                    exception=e,
                    component="temperature_sensor",
                    event="publish_failed",
                    topic=topic,
                )

    # ========================================================================
    # Helpers
    # ========================================================================

    def _log_properties(self, event: str, properties: Mapping[str, Any]):
        if isinstance(properties, ComponentProperties):
            properties = properties.as_properties()
        for key, value in properties.items():
            logger.info(f"{event.capitalize()} - {key}: {value}")

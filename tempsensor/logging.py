"""
Structured Logging Infrastructure
==================================

Logging JSON-based para el componente TemperatureSensor.

Design Philosophy:
- Solo JSON (no dual output)
- Trace correlation vía contextvars (un trace por comando / por tick)
- Helpers para casos comunes (MQTT, lecturas de sensores, errores)
- File rotation automático (RotatingFileHandler)

Usage:
    from tempsensor.logging import setup_logging

    # Stdout (desarrollo)
    setup_logging(level="INFO")

    # File con rotation (producción)
    setup_logging(
        level="INFO",
        log_file="logs/tempsensor.log",
        max_bytes=10*1024*1024,  # 10 MB
        backup_count=5
    )

    # Con trace propagation
    from tempsensor.logging import trace_context, get_trace_id

    with trace_context(generate_trace_id("tick")):
        logger.info("Publicando", extra={"trace_id": get_trace_id()})
"""
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from contextvars import ContextVar
from contextlib import contextmanager
from typing import Optional, Dict, Any, Sequence
import uuid

from pythonjsonlogger import jsonlogger

# ============================================================================
# Trace Context (propagación de trace_id)
# ============================================================================

trace_id_var: ContextVar[Optional[str]] = ContextVar('trace_id', default=None)


def get_trace_id() -> Optional[str]:
    """Obtiene el trace_id actual del contexto (None si no hay)."""
    return trace_id_var.get()


def generate_trace_id(prefix: str = "trace") -> str:
    """
    Genera un nuevo trace ID único.

    Args:
        prefix: Prefijo para el trace ID (ej: "cmd", "tick", "mqtt")

    Returns:
        Trace ID en formato: {prefix}-{short_uuid}
    """
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


@contextmanager
def trace_context(trace_id: Optional[str] = None):
    """
    Context manager para propagar trace_id en toda la call stack.

    Args:
        trace_id: ID de trace a propagar. Si None, genera uno automático.
    """
    if trace_id is None:
        trace_id = generate_trace_id()

    token = trace_id_var.set(trace_id)
    try:
        yield trace_id
    finally:
        trace_id_var.reset(token)


# ============================================================================
# Logger Setup
# ============================================================================

class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter con nombres de campos consistentes y trace_id del contexto."""

    def __init__(self, *args, add_fields: Optional[Dict[str, Any]] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self._global_fields = dict(add_fields or {})

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        # level/logger no son atributos de LogRecord: se toman de levelname/name
        log_record.pop('levelname', None)
        log_record.pop('name', None)
        log_record['level'] = record.levelname
        log_record['logger'] = record.name

        current_trace_id = get_trace_id()
        if current_trace_id and 'trace_id' not in log_record:
            log_record['trace_id'] = current_trace_id

        for key, value in self._global_fields.items():
            if key not in log_record:
                log_record[key] = value


def setup_logging(
    level: str = "INFO",
    indent: Optional[int] = None,
    add_fields: Optional[Dict[str, Any]] = None,
    log_file: Optional[str] = None,
    max_bytes: int = 10 * 1024 * 1024,  # 10 MB
    backup_count: int = 5,
) -> None:
    """
    Configura structured logging (JSON) para toda la aplicación.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        indent: JSON indent para pretty-print (None = compact, 2 = readable)
        add_fields: Campos adicionales globales (ej: {"environment": "production"})
        log_file: Path al archivo de logs (None = stdout). Si se especifica, usa rotation.
        max_bytes: Tamaño máximo por archivo antes de rotar (default 10 MB)
        backup_count: Número de archivos backup a mantener (default 5)
    """
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        handler = RotatingFileHandler(
            filename=str(log_path),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding='utf-8'
        )

        print(f"📄 Logging to file: {log_file} (max: {max_bytes//1024//1024}MB, backups: {backup_count})", file=sys.stderr)
    else:
        handler = logging.StreamHandler(sys.stdout)

    formatter = CustomJsonFormatter(
        '%(timestamp)s %(level)s %(logger)s %(message)s',
        timestamp=True,
        json_indent=indent,
        add_fields=add_fields,
    )
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper()))


# ============================================================================
# Helper Functions (DRY para casos comunes)
# ============================================================================

def log_mqtt_command(
    logger: logging.Logger,
    command: str,
    topic: str,
    payload: Optional[Dict[str, Any]] = None,
    trace_id: Optional[str] = None
) -> None:
    """
    Helper para logs de comandos MQTT (Control Plane).

    Args:
        logger: Logger instance
        command: Nombre del comando (update, status, stop)
        topic: MQTT topic
        payload: Payload completo del comando (opcional)
        trace_id: Trace ID (usa contexto si no se especifica)
    """
    extra = {
        "component": "control_plane",
        "command": command,
        "mqtt_topic": topic,
        "trace_id": trace_id or get_trace_id()
    }

    if payload:
        extra["payload"] = payload

    logger.info(f"📥 Comando recibido: {command}", extra=extra)


def log_mqtt_publish(
    logger: logging.Logger,
    topic: str,
    qos: int,
    payload_size: int,
    success: bool = True,
    error_code: Optional[int] = None,
    retain: Optional[bool] = None,
    component: str = "cloud_client",
) -> None:
    """
    Helper para logs de publicación MQTT.

    Args:
        logger: Logger instance
        topic: MQTT topic
        qos: QoS level
        payload_size: Tamaño del payload en bytes
        success: Si la publicación fue exitosa
        error_code: Código de error MQTT (si success=False)
        retain: Retain flag usado (opcional)
        component: Componente que genera el log
    """
    extra = {
        "component": component,
        "mqtt_topic": topic,
        "qos": qos,
        "payload_size_bytes": payload_size,
        "success": success
    }

    if error_code is not None:
        extra["mqtt_error_code"] = error_code

    if retain is not None:
        extra["retain"] = retain

    if success:
        logger.info(f"📤 Mensaje publicado a {topic}", extra=extra)
    else:
        logger.warning(f"⚠️ Error publicando a {topic}", extra=extra)


def log_sensor_readings(
    logger: logging.Logger,
    readings: Sequence[Any],
    source: str,
    component: str = "temperature_sensor",
) -> None:
    """
    Helper para logs de lecturas de sensores.

    Args:
        logger: Logger instance
        readings: Lecturas obtenidas (SensorReading)
        source: Nombre de la fuente de sensores
        component: Componente que genera el log
    """
    extra = {
        "component": component,
        "sensor_source": source,
        "sensor_count": len(readings),
        "readings": [
            {
                "id": r.id,
                "quantity": r.quantity,
                "value": round(r.value, 2),
                "unit": r.unit,
            }
            for r in readings
        ],
    }

    logger.debug(f"🌡️ {len(readings)} sensores leídos de {source}", extra=extra)


def log_error_with_context(
    logger: logging.Logger,
    message: str,
    exception: Optional[BaseException] = None,
    component: str = "unknown",
    event: Optional[str] = None,
    trace_id: Optional[str] = None,
    **kwargs: Any
) -> None:
    """
    Helper para logs de errores con contexto completo.

    Args:
        logger: Logger instance
        message: Mensaje de error
        exception: Excepción capturada (opcional)
        component: Componente donde ocurrió el error
        event: Evento que causó el error
        trace_id: Trace ID (usa contexto si no se especifica)
        **kwargs: Contexto adicional (broker_host, topic, etc.)
    """
    extra = {
        "component": component,
        "trace_id": trace_id or get_trace_id()
    }

    if event:
        extra["event"] = event

    if exception:
        extra["error_type"] = type(exception).__name__
        extra["error_message"] = str(exception)

    extra.update(kwargs)

    if exception:
        logger.error(f"{message}: {exception}", extra=extra, exc_info=exception)
    else:
        logger.error(message, extra=extra)


# ============================================================================
# Component-specific loggers
# ============================================================================

def get_component_logger(component: str) -> logging.Logger:
    """
    Obtiene un logger con namespace específico.

    Args:
        component: Nombre del componente (control_plane, cloud_client, etc.)
    """
    return logging.getLogger(f"tempsensor.{component}")


__all__ = [
    # Setup
    "setup_logging",
    "CustomJsonFormatter",
    # Trace context
    "trace_context",
    "get_trace_id",
    "generate_trace_id",
    # Helpers
    "log_mqtt_command",
    "log_mqtt_publish",
    "log_sensor_readings",
    "log_error_with_context",
    # Component loggers
    "get_component_logger",
]

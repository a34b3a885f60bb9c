"""
TemperatureSensor Host Controller
=================================

Host standalone del componente TemperatureSensor:

- Cloud service (paho-mqtt) que el componente usa para publicar
- Sensor source 1-Wire
- Control Plane MQTT para actualizar propiedades en caliente (update),
  consultar estado (status) y detener el servicio (stop)
- Signal handling (Ctrl+C / SIGTERM) y cleanup ordenado
"""
import argparse
import logging
import signal
import sys
from pathlib import Path
from threading import Event
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from ..cloud import MqttCloudService
from ..component import TemperatureSensor, ComponentActivationError
from ..config import TempSensorConfig
from ..control import MQTTControlPlane
from ..logging import setup_logging
from ..sensors import W1SensorSource

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/tempsensor/config.yaml"


class TemperatureSensorController:
    """
    Controlador del host.

    Responsabilidad: Orquestación y lifecycle management
    - Setup de cloud service, sensores, componente y control plane
    - Espera hasta stop / señal
    - Cleanup de recursos
    """

    def __init__(self, config: TempSensorConfig):
        self.config = config

        self.cloud_service: Optional[MqttCloudService] = None
        self.sensor_source: Optional[W1SensorSource] = None
        self.component: Optional[TemperatureSensor] = None
        self.control_plane: Optional[MQTTControlPlane] = None

        self.shutdown_event = Event()
        self.is_running = False

    def setup(self) -> bool:
        """
        Inicializa conexiones y activa el componente.

        Returns:
            bool: True si setup exitoso, False si falla
        """
        logger.info("🚀 Inicializando TemperatureSensor...")
        mqtt_cfg = self.config.mqtt

        # ====================================================================
        # 1. Cloud service (publish sink)
        # ====================================================================
        logger.info("📡 Configurando Cloud service...")
        self.cloud_service = MqttCloudService(
            broker_host=mqtt_cfg.broker.host,
            broker_port=mqtt_cfg.broker.port,
            client_id=mqtt_cfg.broker.client_id,
            username=mqtt_cfg.broker.username,
            password=mqtt_cfg.broker.password,
            keepalive=mqtt_cfg.broker.keepalive,
            topic_prefix=mqtt_cfg.topics.prefix,
        )

        if not self.cloud_service.connect(timeout=mqtt_cfg.connect_timeout):
            logger.error("❌ No se pudo conectar Cloud service")
            return False

        # ====================================================================
        # 2. Sensor source + componente
        # ====================================================================
        self.sensor_source = W1SensorSource(
            devices_path=self.config.sensors.w1_devices_path,
            families=self.config.sensors.families,
        )
        self.component = TemperatureSensor(self.cloud_service, self.sensor_source)

        try:
            self.component.activate(self.config.component)
        except ComponentActivationError as e:
            logger.error(f"❌ No se pudo activar el componente: {e.__cause__}")
            return False
        self.is_running = True

        # ====================================================================
        # 3. Control Plane (receptor de comandos)
        # ====================================================================
        logger.info("🎮 Configurando Control Plane...")
        self.control_plane = MQTTControlPlane(
            broker_host=mqtt_cfg.broker.host,
            broker_port=mqtt_cfg.broker.port,
            command_topic=mqtt_cfg.topics.control_commands,
            status_topic=mqtt_cfg.topics.control_status,
            client_id=f"{mqtt_cfg.broker.client_id}_control",
            username=mqtt_cfg.broker.username,
            password=mqtt_cfg.broker.password,
            qos=mqtt_cfg.qos.control,
        )
        self._setup_control_commands()

        if not self.control_plane.connect(timeout=mqtt_cfg.connect_timeout):
            logger.error("❌ No se pudo conectar Control Plane")
            return False

        logger.info("✅ Setup completado")
        return True

    def _setup_control_commands(self):
        registry = self.control_plane.command_registry
        registry.register('update', self._handle_update, "Aplica nuevas propiedades del componente")
        registry.register('status', self._handle_status, "Consulta estado actual")
        registry.register('stop', self._handle_stop, "Detiene el servicio")

    def _status_fields(self) -> Dict[str, Any]:
        props = self.component.properties if self.component else None
        return {"properties": props.as_properties() if props else {}}

    def _handle_update(self, command_data: Dict[str, Any]):
        """Callback para comando UPDATE - equivalente remoto de updated()"""
        properties = command_data.get('properties')
        if not isinstance(properties, dict):
            logger.warning("⚠️ Comando UPDATE sin 'properties', ignorado")
            self.control_plane.publish_status("rejected", reason="missing properties")
            return

        try:
            self.component.updated(properties)
        except ValidationError as e:
            logger.warning(f"⚠️ Propiedades inválidas: {e.error_count()} errores")
            self.control_plane.publish_status(
                "rejected",
                reason="invalid properties",
                errors=[
                    {"field": " -> ".join(str(loc) for loc in err['loc']), "msg": err['msg']}
                    for err in e.errors()
                ],
            )
            return

        self._handle_status(command_data)

    def _handle_status(self, command_data: Dict[str, Any]):
        """Callback para comando STATUS - publica estado actual"""
        if not self.is_running:
            status = "stopped"
        elif self.component.is_scheduled:
            status = "running"
        else:
            status = "idle"
        self.control_plane.publish_status(status, **self._status_fields())

    def _handle_stop(self, command_data: Dict[str, Any]):
        """Callback para comando STOP - detiene y finaliza el programa"""
        logger.info("⏹️ Comando STOP recibido")
        self.control_plane.publish_status("stopped")
        self.shutdown_event.set()

    def run(self):
        """Ejecuta el host hasta STOP o señal de terminación."""
        if not self.setup():
            logger.error("❌ Setup falló")
            self.cleanup()
            return False

        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        try:
            while not self.shutdown_event.is_set():
                self.shutdown_event.wait(timeout=1.0)
        except KeyboardInterrupt:
            logger.info("⚠️ Interrupción forzada...")
            self.shutdown_event.set()

        self.cleanup()
        return True

    def _signal_handler(self, signum, frame):
        """Handler para señales (Ctrl+C)"""
        logger.info("⚠️ Señal de terminación recibida...")
        self.shutdown_event.set()

    def cleanup(self):
        """Limpia recursos al finalizar."""
        logger.info("🧹 Limpiando recursos...")

        # 1. Desactivar componente (no más publicaciones)
        if self.component and self.is_running:
            try:
                self.component.deactivate()
                self.is_running = False
                logger.info("✅ Componente desactivado")
            except Exception as e:
                logger.error(f"❌ Error desactivando componente: {e}")

        # 2. Desconectar Control Plane
        if self.control_plane:
            try:
                self.control_plane.disconnect()
                logger.info("✅ Control Plane desconectado")
            except Exception as e:
                logger.error(f"❌ Error desconectando Control Plane: {e}")

        # 3. Desconectar Cloud service
        if self.cloud_service:
            try:
                self.cloud_service.disconnect()
                logger.info("✅ Cloud service desconectado")
            except Exception as e:
                logger.error(f"❌ Error desconectando Cloud service: {e}")

        logger.info("👋 Hasta luego!")


# ============================================================================
# MAIN
# ============================================================================
def load_config(config_path: str) -> TempSensorConfig:
    """Carga configuración desde YAML, o defaults si no existe el archivo."""
    if Path(config_path).exists():
        config = TempSensorConfig.from_yaml(config_path)
        print(f"✅ Config loaded and validated from {config_path}")
    else:
        config = TempSensorConfig()
        print(f"⚠️  Config file not found ({config_path}), using defaults")
    return config


def main(argv=None):
    """Punto de entrada principal"""
    load_dotenv()

    parser = argparse.ArgumentParser(
        description="Publica lecturas de sensores 1-Wire vía MQTT"
    )
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help=f"Path al config YAML (default: {DEFAULT_CONFIG_PATH})"
    )
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except ValidationError as e:
        print("❌ Invalid configuration:")
        for error in e.errors():
            field = " -> ".join(str(loc) for loc in error['loc'])
            print(f"   • {field}: {error['msg']}")
        print(f"\nPlease fix {args.config} and try again.")
        sys.exit(1)
    except Exception as e:
        print(f"❌ Error loading config: {e}")
        sys.exit(1)

    setup_logging(
        level=config.logging.level,
        indent=config.logging.json_indent,
        log_file=config.logging.file,
        max_bytes=config.logging.max_bytes,
        backup_count=config.logging.backup_count,
    )
    logging.getLogger('paho').setLevel(getattr(logging, config.logging.paho_level))
    logger.info("🔧 TemperatureSensor starting...")

    controller = TemperatureSensorController(config)

    try:
        ok = controller.run()
    except Exception as e:
        logger.error(f"❌ Error fatal: {e}", exc_info=True)
        sys.exit(1)

    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()

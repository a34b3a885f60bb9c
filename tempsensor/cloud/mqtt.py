"""
MQTT Cloud Service
==================

Implementación del CloudService sobre paho-mqtt.

Diseño:
- MqttCloudService = infraestructura MQTT (una conexión compartida)
- MqttCloudClient = cliente por aplicación (namespace de topics + listeners)
- Topic completo: <prefix>/<app_id>/<app_topic>
- Callbacks de paho se reenvían a los listeners registrados; un listener que
  falla se loggea y nunca rompe el network loop de paho
"""
import logging
from threading import Event, RLock
from typing import Dict, List, Optional, Tuple

import paho.mqtt.client as mqtt

from .base import (
    CloudClient,
    CloudClientListener,
    CloudConnectionError,
    CloudPublishError,
    CloudService,
)
from ..logging import log_mqtt_publish, log_error_with_context

logger = logging.getLogger(__name__)


class MqttCloudClient(CloudClient):
    """
    Cliente cloud de una aplicación sobre la conexión del MqttCloudService.

    No abre conexiones propias: publica vía el service y recibe
    eventos de conexión/mensajes que el service le reenvía.
    """

    def __init__(self, service: 'MqttCloudService', app_id: str):
        self._service = service
        self._app_id = app_id
        self._listeners: List[CloudClientListener] = []
        self._lock = RLock()
        self._released = False

    @property
    def app_id(self) -> str:
        return self._app_id

    @property
    def released(self) -> bool:
        return self._released

    def publish(self, app_topic: str, payload: bytes, qos: int, retain: bool, priority: int) -> int:
        topic = self._service.full_topic(self._app_id, app_topic)

        if self._released:
            raise CloudPublishError(f"Cloud client {self._app_id} already released", topic)

        # priority no tiene equivalente en MQTT; se conserva solo para logging
        return self._service.publish(self, app_topic, topic, payload, qos, retain, priority)

    def add_cloud_client_listener(self, listener: CloudClientListener):
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def remove_cloud_client_listener(self, listener: CloudClientListener):
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def release(self):
        if self._released:
            return
        self._released = True
        with self._lock:
            self._listeners.clear()
        self._service.release_client(self)
        logger.info(
            "🔓 Cloud client liberado",
            extra={
                "component": "cloud_client",
                "event": "client_released",
                "app_id": self._app_id,
            }
        )

    def dispatch(self, callback: str, *args):
        """Invoca `callback` en cada listener (errores loggeados, no propagados)."""
        with self._lock:
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                getattr(listener, callback)(*args)
            except Exception as e:
                log_error_with_context(
                    logger,
                    message="❌ Error en listener de cloud client",
                    exception=e,
                    component="cloud_client",
                    event="listener_error",
                    app_id=self._app_id,
                    callback=callback,
                )


class MqttCloudService(CloudService):
    """
    CloudService sobre una conexión paho-mqtt.

    Usage:
        service = MqttCloudService(broker_host="localhost", topic_prefix="tempsensor")
        if service.connect(timeout=10):
            client = service.new_cloud_client("TemperatureSensor")
            client.publish("data", b"...", qos=0, retain=False, priority=1)
    """

    def __init__(
        self,
        broker_host: str,
        broker_port: int = 1883,
        client_id: str = "tempsensor",
        username: Optional[str] = None,
        password: Optional[str] = None,
        keepalive: int = 60,
        topic_prefix: str = "tempsensor",
    ):
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.client_id = client_id
        self.keepalive = keepalive
        self.topic_prefix = topic_prefix.strip('/')

        self.client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=client_id,
            protocol=mqtt.MQTTv5,
        )
        if username and password:
            self.client.username_pw_set(username, password)

        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_publish = self._on_publish
        self.client.on_message = self._on_message

        self._connected = Event()
        self._lock = RLock()
        self._clients: Dict[str, MqttCloudClient] = {}
        # mid -> (client, app_topic, qos) para los callbacks de publish
        self._inflight: Dict[int, Tuple[MqttCloudClient, str, int]] = {}

    # ------------------------------------------------------------------
    # Topics
    # ------------------------------------------------------------------

    def full_topic(self, app_id: str, app_topic: str) -> str:
        parts = [self.topic_prefix, app_id, app_topic.strip('/')]
        return "/".join(p for p in parts if p)

    def _split_topic(self, topic: str) -> Optional[Tuple[str, str]]:
        prefix = f"{self.topic_prefix}/" if self.topic_prefix else ""
        if not topic.startswith(prefix):
            return None
        app_id, _, app_topic = topic[len(prefix):].partition("/")
        return app_id, app_topic

    # ------------------------------------------------------------------
    # paho callbacks
    # ------------------------------------------------------------------

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        """Callback cuando se conecta al broker"""
        if not reason_code.is_failure:
            logger.info(
                "✅ Cloud service conectado",
                extra={
                    "component": "cloud_service",
                    "event": "connected",
                    "broker_host": self.broker_host,
                    "broker_port": self.broker_port,
                }
            )
            self._connected.set()
            self._dispatch_all("on_connection_established")
        else:
            log_error_with_context(
                logger,
                message=f"❌ Error conectando al broker MQTT: {reason_code}",
                component="cloud_service",
                event="connection_failed",
                broker_host=self.broker_host,
                broker_port=self.broker_port,
            )

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties=None):
        """Callback cuando se desconecta del broker"""
        logger.warning(
            "⚠️ Cloud service desconectado",
            extra={
                "component": "cloud_service",
                "event": "disconnected",
                "rc": str(reason_code),
            }
        )
        was_connected = self._connected.is_set()
        self._connected.clear()
        if was_connected:
            self._dispatch_all("on_connection_lost")

    def _on_publish(self, client, userdata, mid, reason_code=None, properties=None):
        with self._lock:
            entry = self._inflight.pop(mid, None)
        if entry is None:
            return

        cloud_client, app_topic, qos = entry
        cloud_client.dispatch("on_message_published", mid, app_topic)
        if qos > 0:
            cloud_client.dispatch("on_message_confirmed", mid, app_topic)

    def _on_message(self, client, userdata, msg):
        split = self._split_topic(msg.topic)
        if split is None:
            return

        app_id, app_topic = split
        with self._lock:
            cloud_client = self._clients.get(app_id)
        if cloud_client is not None:
            cloud_client.dispatch(
                "on_message_arrived", self.client_id, app_topic, msg.payload, msg.qos, msg.retain
            )

    def _dispatch_all(self, callback: str, *args):
        with self._lock:
            clients = list(self._clients.values())
        for cloud_client in clients:
            cloud_client.dispatch(callback, *args)

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    def connect(self, timeout: float = 5.0) -> bool:
        """Conecta al broker MQTT"""
        try:
            logger.info(
                "🔌 Conectando Cloud service",
                extra={
                    "component": "cloud_service",
                    "event": "connecting",
                    "broker_host": self.broker_host,
                    "broker_port": self.broker_port,
                    "timeout": timeout,
                }
            )
            self.client.connect(self.broker_host, self.broker_port, keepalive=self.keepalive)
            self.client.loop_start()
            return self._connected.wait(timeout=timeout)
        except Exception as e:
            log_error_with_context(
                logger,
                message="❌ Error conectando Cloud service",
                exception=e,
                component="cloud_service",
                event="connection_error",
                broker_host=self.broker_host,
                broker_port=self.broker_port,
            )
            return False

    def disconnect(self):
        """Desconecta del broker MQTT"""
        logger.info(
            "🔌 Desconectando Cloud service",
            extra={
                "component": "cloud_service",
                "event": "disconnecting",
            }
        )
        self.client.disconnect()
        self.client.loop_stop()
        self._connected.clear()

    # ------------------------------------------------------------------
    # CloudService
    # ------------------------------------------------------------------

    def new_cloud_client(self, app_id: str) -> MqttCloudClient:
        if not self._connected.is_set():
            raise CloudConnectionError(
                f"Cloud service not connected to {self.broker_host}:{self.broker_port}"
            )

        with self._lock:
            if app_id in self._clients:
                raise CloudConnectionError(f"Cloud client already exists for {app_id}")
            cloud_client = MqttCloudClient(self, app_id)
            self._clients[app_id] = cloud_client

        logger.info(
            f"🔑 Cloud client creado para {app_id}",
            extra={
                "component": "cloud_service",
                "event": "client_created",
                "app_id": app_id,
            }
        )
        return cloud_client

    def release_client(self, cloud_client: MqttCloudClient):
        with self._lock:
            if self._clients.get(cloud_client.app_id) is cloud_client:
                del self._clients[cloud_client.app_id]
            self._inflight = {
                mid: entry for mid, entry in self._inflight.items() if entry[0] is not cloud_client
            }

    def publish(
        self,
        cloud_client: MqttCloudClient,
        app_topic: str,
        topic: str,
        payload: bytes,
        qos: int,
        retain: bool,
        priority: int,
    ) -> int:
        """Publica en nombre de `cloud_client` (usado por MqttCloudClient.publish)."""
        if not self._connected.is_set():
            log_mqtt_publish(
                logger,
                topic=topic,
                qos=qos,
                payload_size=len(payload),
                success=False,
                retain=retain,
            )
            raise CloudPublishError(f"Not connected, cannot publish to {topic}", topic)

        with self._lock:
            result = self.client.publish(topic, payload, qos=qos, retain=retain)
            if result.rc == mqtt.MQTT_ERR_SUCCESS:
                self._inflight[result.mid] = (cloud_client, app_topic, qos)

        if result.rc != mqtt.MQTT_ERR_SUCCESS:
            log_mqtt_publish(
                logger,
                topic=topic,
                qos=qos,
                payload_size=len(payload),
                success=False,
                error_code=result.rc,
                retain=retain,
            )
            raise CloudPublishError(
                f"Publish to {topic} failed: {mqtt.error_string(result.rc)}", topic, result.rc
            )

        log_mqtt_publish(
            logger,
            topic=topic,
            qos=qos,
            payload_size=len(payload),
            retain=retain,
        )
        logger.debug(
            "Publish priority ignored by MQTT transport",
            extra={"component": "cloud_client", "priority": priority, "mid": result.mid}
        )
        return result.mid

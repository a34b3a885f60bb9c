"""
Cloud Client Contract
=====================

Contrato entre el componente y el broker de mensajes.

- CloudService: fábrica de clientes por aplicación (app_id)
- CloudClient: publish + registro de listeners + release
- CloudClientListener: callbacks de conexión/mensajes (no-op por defecto)
"""
from abc import ABC, abstractmethod
from typing import Any


class CloudError(Exception):
    """Error base de la capa cloud."""
    pass


class CloudConnectionError(CloudError):
    """No se pudo obtener/conectar el cliente cloud."""
    pass


class CloudPublishError(CloudError):
    """La publicación fue rechazada (no conectado, rc != 0, cliente liberado)."""

    def __init__(self, message: str, topic: str, rc: int = -1):
        super().__init__(message)
        self.topic = topic
        self.rc = rc


class CloudClientListener:
    """
    Callbacks de conexión y mensajes de un CloudClient.

    Todos son no-op: los componentes sobreescriben solo los que necesitan.
    """

    def on_control_message_arrived(self, device_id: str, app_topic: str, payload: Any, qos: int, retain: bool):
        pass

    def on_message_arrived(self, device_id: str, app_topic: str, payload: Any, qos: int, retain: bool):
        pass

    def on_connection_lost(self):
        pass

    def on_connection_established(self):
        pass

    def on_message_confirmed(self, message_id: int, app_topic: str):
        pass

    def on_message_published(self, message_id: int, app_topic: str):
        pass


class CloudClient(ABC):
    """Cliente cloud de una aplicación (app_id)."""

    @property
    @abstractmethod
    def app_id(self) -> str:
        pass

    @abstractmethod
    def publish(self, app_topic: str, payload: bytes, qos: int, retain: bool, priority: int) -> int:
        """
        Publica un mensaje en el topic de la aplicación.

        Args:
            app_topic: Topic relativo a la aplicación
            payload: Bytes a publicar
            qos: QoS (0, 1, 2)
            retain: Retain flag
            priority: Prioridad (0 = máxima)

        Returns:
            Message id asignado

        Raises:
            CloudPublishError: Si el mensaje no pudo encolarse
        """
        pass

    @abstractmethod
    def add_cloud_client_listener(self, listener: CloudClientListener):
        pass

    @abstractmethod
    def remove_cloud_client_listener(self, listener: CloudClientListener):
        pass

    @abstractmethod
    def release(self):
        """Libera el cliente. Publicar después de release falla."""
        pass


class CloudService(ABC):
    """Fábrica de CloudClient."""

    @abstractmethod
    def new_cloud_client(self, app_id: str) -> CloudClient:
        """
        Crea un cliente para la aplicación.

        Raises:
            CloudConnectionError: Si el servicio no está disponible
        """
        pass

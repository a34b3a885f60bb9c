"""
Base Sensor Source Interface
============================

ABC para todas las fuentes de sensores.
Define el contrato explícito que consume el TemperatureSensor.

Contract:
- list_sensors(): lecturas actuales de todos los sensores disponibles
- Una lectura fallida se reporta con SensorReadError (OSError), nunca
  con lecturas parciales
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Sequence


class SensorReadError(OSError):
    """Error de I/O leyendo el bus de sensores."""
    pass


@dataclass(frozen=True)
class SensorReading:
    """Lectura puntual de un sensor. Se crea en cada lectura, no se persiste."""
    id: str
    quantity: str
    value: float
    unit: str


class SensorSource(ABC):
    """
    Clase base abstracta para fuentes de sensores.

    Implementaciones concretas:
    - W1SensorSource: termómetros 1-Wire vía sysfs (Linux)
    """

    @abstractmethod
    def list_sensors(self) -> Sequence[SensorReading]:
        """
        Enumera los sensores disponibles y su último valor.

        Returns:
            Lecturas en orden de iteración estable (vacío si no hay sensores)

        Raises:
            SensorReadError: Si el bus o algún sensor no se puede leer
        """
        pass

    @property
    def name(self) -> str:
        """Nombre de la fuente (para logging)."""
        return self.__class__.__name__

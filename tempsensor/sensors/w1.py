"""
1-Wire Sensor Source
====================

Lee termómetros 1-Wire (DS18B20, DS18S20, DS1822, ...) expuestos por el
driver w1-therm de Linux en sysfs.

Formato de w1_slave:

    72 01 4b 46 7f ff 0e 10 57 : crc=57 YES
    72 01 4b 46 7f ff 0e 10 57 t=23125

- Línea 1 termina en YES si el CRC es válido
- Línea 2 trae la temperatura en milésimas de grado Celsius
"""
import logging
from pathlib import Path
from typing import Iterable, List, Optional

from .base import SensorReading, SensorReadError, SensorSource

logger = logging.getLogger(__name__)

DEFAULT_W1_DEVICES_PATH = "/sys/bus/w1/devices"

# Family codes de los termómetros soportados por w1-therm
DEFAULT_THERMOMETER_FAMILIES = ("28", "10", "22", "3b", "42")

TEMPERATURE_QUANTITY = "Temperature"
CELSIUS_UNIT = "C"


def parse_w1_slave(content: str, sensor_id: str) -> float:
    """
    Parsea el contenido de w1_slave y retorna grados Celsius.

    Raises:
        SensorReadError: Si el CRC falla o no hay valor t=
    """
    lines = content.strip().splitlines()
    if len(lines) < 2:
        raise SensorReadError(f"Sensor {sensor_id}: incomplete w1_slave data")

    if not lines[0].strip().endswith("YES"):
        raise SensorReadError(f"Sensor {sensor_id}: CRC check failed")

    _, sep, raw = lines[1].partition("t=")
    if not sep:
        raise SensorReadError(f"Sensor {sensor_id}: no temperature value")

    try:
        return int(raw.strip()) / 1000.0
    except ValueError as e:
        raise SensorReadError(f"Sensor {sensor_id}: invalid temperature {raw.strip()!r}") from e


class W1SensorSource(SensorSource):
    """
    Fuente de sensores sobre el bus 1-Wire (sysfs).

    Cada lectura enumera el bus de nuevo: sensores conectados/desconectados
    en caliente aparecen en el siguiente tick.
    """

    def __init__(
        self,
        devices_path: str = DEFAULT_W1_DEVICES_PATH,
        families: Optional[Iterable[str]] = None,
    ):
        self.devices_path = Path(devices_path)
        self.families = frozenset(
            f.lower() for f in (families if families is not None else DEFAULT_THERMOMETER_FAMILIES)
        )

    def _device_dirs(self) -> List[Path]:
        try:
            entries = list(self.devices_path.iterdir())
        except OSError as e:
            raise SensorReadError(f"Cannot enumerate 1-Wire bus at {self.devices_path}: {e}") from e

        devices = [
            entry for entry in entries
            if entry.name.partition("-")[0].lower() in self.families and "-" in entry.name
        ]
        return sorted(devices, key=lambda p: p.name)

    def read_sensor(self, device_dir: Path) -> SensorReading:
        """Lee un sensor individual."""
        sensor_id = device_dir.name
        try:
            content = (device_dir / "w1_slave").read_text()
        except OSError as e:
            raise SensorReadError(f"Sensor {sensor_id}: {e}") from e

        return SensorReading(
            id=sensor_id,
            quantity=TEMPERATURE_QUANTITY,
            value=parse_w1_slave(content, sensor_id),
            unit=CELSIUS_UNIT,
        )

    def list_sensors(self) -> List[SensorReading]:
        readings = [self.read_sensor(d) for d in self._device_dirs()]
        logger.debug(
            f"🔎 {len(readings)} sensores 1-Wire encontrados",
            extra={
                "component": "w1_sensor_source",
                "event": "bus_scanned",
                "devices_path": str(self.devices_path),
                "sensor_ids": [r.id for r in readings],
            }
        )
        return readings

    def __repr__(self) -> str:
        return f"W1SensorSource(devices_path={str(self.devices_path)!r}, families={sorted(self.families)})"

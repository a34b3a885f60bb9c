"""
Command Registry
================

Registry explícito de comandos MQTT disponibles.

- Registry explícito: solo se registran comandos disponibles
- Validación temprana: error si comando no existe
- Introspección: listar comandos disponibles
- Los handlers reciben el mensaje completo del comando (dict)
"""
from typing import Any, Callable, Dict, Optional, Set
import logging

logger = logging.getLogger(__name__)

CommandHandler = Callable[[Dict[str, Any]], Any]


class CommandNotAvailableError(Exception):
    """Comando no está registrado."""
    pass


class CommandRegistry:
    """
    Registry de comandos MQTT.

    Usage:
        registry = CommandRegistry()
        registry.register('status', lambda data: publish_status(), "Consulta estado")
        registry.register('update', lambda data: component.updated(data['properties']),
                          "Aplica nuevas propiedades")

        try:
            registry.execute('update', {"command": "update", "properties": {...}})
        except CommandNotAvailableError as e:
            logger.warning(str(e))
    """

    def __init__(self):
        self._commands: Dict[str, CommandHandler] = {}
        self._descriptions: Dict[str, str] = {}

    def register(self, command: str, handler: CommandHandler, description: str = ""):
        """
        Registra un comando.

        Note:
            Si comando ya existe, se sobrescribe con warning.
        """
        if command in self._commands:
            logger.warning(f"⚠️ Comando '{command}' ya registrado, sobrescribiendo")

        self._commands[command] = handler
        self._descriptions[command] = description
        logger.debug(f"📝 Comando registrado: '{command}' - {description}")

    def execute(self, command: str, command_data: Optional[Dict[str, Any]] = None):
        """
        Ejecuta un comando.

        Args:
            command: Nombre del comando
            command_data: Mensaje completo recibido (default: {"command": command})

        Returns:
            Resultado del handler (o None)

        Raises:
            CommandNotAvailableError: Si comando no está registrado
        """
        if command not in self._commands:
            available = ', '.join(sorted(self.available_commands))
            raise CommandNotAvailableError(
                f"Command '{command}' not available. "
                f"Available commands: {available}"
            )

        if command_data is None:
            command_data = {"command": command}

        handler = self._commands[command]
        logger.debug(f"⚙️ Ejecutando comando: '{command}'")
        return handler(command_data)

    def is_available(self, command: str) -> bool:
        return command in self._commands

    @property
    def available_commands(self) -> Set[str]:
        return set(self._commands.keys())

    def get_help(self) -> Dict[str, str]:
        """Dict[comando, descripción]"""
        return dict(self._descriptions)

    def __repr__(self) -> str:
        cmds = ', '.join(sorted(self.available_commands))
        return f"CommandRegistry({len(self._commands)} commands: {cmds})"

"""
Application - Host controller
"""
from .controller import TemperatureSensorController, main

__all__ = ["TemperatureSensorController", "main"]

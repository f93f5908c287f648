"""Excepciones del pipeline de pasos."""

from __future__ import annotations

SENSOR_UNAVAILABLE_MESSAGE = "Pedometer is not available on this device."


class PasosToolError(Exception):
    """Base error for pasos_tool."""


class SensorUnavailableError(PasosToolError):
    """The step sensor is absent or disabled on this device."""

    def __init__(self, message: str = SENSOR_UNAVAILABLE_MESSAGE) -> None:
        super().__init__(message)

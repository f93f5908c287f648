"""Ajustes clave/valor asíncronos y lectura del perfil de usuario."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod

import structlog

from pasos_tool.calculations import parse_weight
from pasos_tool.model import SpeedUnit, UnitSystem, UserProfile

logger = structlog.get_logger(__name__)

WEIGHT_KEY = "weight"
UNITS_KEY = "units"
SPEED_UNIT_KEY = "speedUnit"


class SettingsStore(ABC):
    """Asynchronous string key-value store."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the stored value or None."""

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store a value, replacing any previous one."""

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Delete a key; missing keys are ignored."""


class InMemorySettingsStore(SettingsStore):
    """Settings kept in a dict, with optional artificial latency."""

    def __init__(
        self, values: dict[str, str] | None = None, *, delay: float = 0.0
    ) -> None:
        self._values = dict(values or {})
        self._delay = delay

    async def get(self, key: str) -> str | None:
        if self._delay:
            await asyncio.sleep(self._delay)
        return self._values.get(key)

    async def set(self, key: str, value: str) -> None:
        self._values[key] = value

    async def remove(self, key: str) -> None:
        self._values.pop(key, None)


def format_units(unit_system: UnitSystem) -> str:
    """Render a unit system the way it is stored ('Metric'/'Imperial')."""
    return unit_system.value.capitalize()


async def load_profile(
    settings: SettingsStore,
    default_units: UnitSystem = UnitSystem.METRIC,
) -> UserProfile:
    """Read weight, units and speed unit from settings.

    Read failures and unparseable values degrade to defaults: unknown
    weight, ``default_units`` and no explicit speed unit.

    Args:
        settings: Settings collaborator.
        default_units: Unit system used when the setting is absent.

    Returns:
        The user profile as currently stored.
    """
    raw: dict[str, str | None] = {}
    for key in (WEIGHT_KEY, UNITS_KEY, SPEED_UNIT_KEY):
        try:
            raw[key] = await settings.get(key)
        except Exception as exc:
            logger.warning("profile_read_failed", key=key, error=repr(exc))
            raw[key] = None

    weight = parse_weight(raw[WEIGHT_KEY])
    if raw[WEIGHT_KEY] and weight is None:
        logger.warning("profile_weight_invalid", value=raw[WEIGHT_KEY])
    return UserProfile(
        weight_kg=weight,
        unit_system=UnitSystem.parse(raw[UNITS_KEY]) or default_units,
        speed_unit=SpeedUnit.parse(raw[SPEED_UNIT_KEY]),
    )

from __future__ import annotations

import asyncio

from pasos_tool.model import SpeedUnit, UnitSystem, UserProfile
from pasos_tool.settings import InMemorySettingsStore, SettingsStore, load_profile


class _FailingSettings(SettingsStore):
    async def get(self, key: str) -> str | None:
        raise OSError("storage offline")

    async def set(self, key: str, value: str) -> None:
        raise OSError("storage offline")

    async def remove(self, key: str) -> None:
        raise OSError("storage offline")


def test_load_profile_reads_all_keys() -> None:
    settings = InMemorySettingsStore(
        {"weight": "70", "units": "Imperial", "speedUnit": "mph"}
    )
    profile = asyncio.run(load_profile(settings))
    assert profile == UserProfile(
        weight_kg=70.0, unit_system=UnitSystem.IMPERIAL, speed_unit=SpeedUnit.MPH
    )


def test_load_profile_defaults_on_missing_or_invalid_values() -> None:
    settings = InMemorySettingsStore({"weight": "heavy", "units": "furlongs"})
    profile = asyncio.run(load_profile(settings, UnitSystem.IMPERIAL))
    assert profile.weight_kg is None
    assert profile.unit_system is UnitSystem.IMPERIAL
    assert profile.speed_unit is None


def test_load_profile_survives_read_failures() -> None:
    profile = asyncio.run(load_profile(_FailingSettings()))
    assert profile == UserProfile()


def test_in_memory_settings_set_and_remove() -> None:
    settings = InMemorySettingsStore()

    async def _scenario() -> list[str | None]:
        await settings.set("units", "Metric")
        first = await settings.get("units")
        await settings.remove("units")
        await settings.remove("missing")
        return [first, await settings.get("units")]

    assert asyncio.run(_scenario()) == ["Metric", None]

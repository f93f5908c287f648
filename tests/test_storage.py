from __future__ import annotations

import asyncio
from datetime import date
from pathlib import Path

from pasos_tool.model import HealthSnapshot, UnitSystem, WeeklyEntry
from pasos_tool.storage import AppConfig, SQLiteSettingsStore, SQLiteStore


def test_store_config_defaults_and_roundtrip(tmp_path: Path) -> None:
    store = SQLiteStore(tmp_path / "nested" / "app.sqlite3")
    defaults = store.load_config()
    assert defaults.weight == ""
    assert defaults.units == "Metric"
    assert defaults.unit_system is UnitSystem.METRIC

    store.save_config(
        AppConfig(weight="72.5", units="Imperial", speed_unit="mph", timezone="UTC")
    )
    loaded = store.load_config()
    assert loaded.weight == "72.5"
    assert loaded.unit_system is UnitSystem.IMPERIAL
    assert loaded.speed_unit == "mph"
    assert loaded.timezone == "UTC"
    assert store.get_value("weight") == "72.5"


def test_store_snapshot_roundtrip(tmp_path: Path) -> None:
    store = SQLiteStore(tmp_path / "app.sqlite3")
    assert store.load_snapshot() is None

    snap = HealthSnapshot(steps=1500, active_energy=4.2, distance=1.14, speed=3.2)
    store.save_snapshot(date(2025, 12, 15), snap)
    store.save_snapshot(date(2025, 12, 16), snap.replace(steps=10))

    loaded = store.load_snapshot()
    assert loaded == (date(2025, 12, 16), snap.replace(steps=10))


def test_store_weekly_replaces_history(tmp_path: Path) -> None:
    store = SQLiteStore(tmp_path / "app.sqlite3")
    store.save_weekly(
        {
            "steps": [
                WeeklyEntry(day=date(2025, 12, 16), value=200.0),
                WeeklyEntry(day=date(2025, 12, 15), value=100.0),
            ]
        }
    )
    store.save_weekly({"steps": [WeeklyEntry(day=date(2025, 12, 17), value=300.0)]})

    weekly = store.load_weekly()
    assert weekly["steps"] == [WeeklyEntry(day=date(2025, 12, 17), value=300.0)]
    assert weekly["distance"] == []


def test_sqlite_settings_store_get_set_remove(tmp_path: Path) -> None:
    settings = SQLiteSettingsStore(SQLiteStore(tmp_path / "app.sqlite3"))

    async def _scenario() -> tuple[str | None, str | None, str | None]:
        before = await settings.get("weight")
        await settings.set("weight", "68")
        during = await settings.get("weight")
        await settings.remove("weight")
        await settings.remove("weight")
        after = await settings.get("weight")
        return before, during, after

    assert asyncio.run(_scenario()) == (None, "68", None)

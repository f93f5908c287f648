"""Persistencia SQLite para configuracion, snapshot diario e historial semanal."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any

from pasos_tool.model import METRIC_FIELDS, HealthSnapshot, UnitSystem, WeeklyEntry
from pasos_tool.settings import (
    SPEED_UNIT_KEY,
    UNITS_KEY,
    WEIGHT_KEY,
    SettingsStore,
    format_units,
)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS app_config (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS daily_snapshot (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    day TEXT NOT NULL,
    payload TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS weekly_history (
    metric TEXT NOT NULL,
    day TEXT NOT NULL,
    value REAL NOT NULL,
    PRIMARY KEY (metric, day)
);
"""

TIMEZONE_KEY = "timezone"


@dataclass(frozen=True)
class AppConfig:
    """Configuracion persistida de la app."""

    weight: str
    units: str
    speed_unit: str
    timezone: str

    @property
    def unit_system(self) -> UnitSystem:
        return UnitSystem.parse(self.units) or UnitSystem.METRIC


class SQLiteStore:
    """Repositorio SQLite para la app."""

    def __init__(self, db_path: Path) -> None:
        """Create store and ensure schema exists."""
        self._db_path = db_path
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_schema(self) -> None:
        with self._connect() as conn:
            conn.executescript(SCHEMA_SQL)
            conn.commit()

    def get_value(self, key: str) -> str | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT value FROM app_config WHERE key = ?", (key,)
            ).fetchone()
        if row is None:
            return None
        return str(row["value"])

    def set_value(self, key: str, value: str) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO app_config(key, value) VALUES(?, ?)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value
                """,
                (key, value),
            )
            conn.commit()

    def remove_value(self, key: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM app_config WHERE key = ?", (key,))
            conn.commit()

    def load_config(self) -> AppConfig:
        """Devuelve configuracion guardada o defaults."""
        defaults = {
            WEIGHT_KEY: "",
            UNITS_KEY: format_units(UnitSystem.METRIC),
            SPEED_UNIT_KEY: "",
            TIMEZONE_KEY: "",
        }
        with self._connect() as conn:
            rows = conn.execute("SELECT key, value FROM app_config").fetchall()
        values = {row["key"]: row["value"] for row in rows}
        merged = {**defaults, **values}
        return AppConfig(
            weight=merged[WEIGHT_KEY],
            units=merged[UNITS_KEY],
            speed_unit=merged[SPEED_UNIT_KEY],
            timezone=merged[TIMEZONE_KEY],
        )

    def save_config(self, config: AppConfig) -> None:
        """Guarda la configuracion en tabla key/value."""
        payload = {
            WEIGHT_KEY: config.weight,
            UNITS_KEY: config.units,
            SPEED_UNIT_KEY: config.speed_unit,
            TIMEZONE_KEY: config.timezone,
        }
        with self._connect() as conn:
            conn.executemany(
                """
                INSERT INTO app_config(key, value) VALUES(?, ?)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value
                """,
                payload.items(),
            )
            conn.commit()

    def save_snapshot(self, day: date, snapshot: HealthSnapshot) -> None:
        """Guarda el snapshot del dia (una sola fila)."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO daily_snapshot(id, day, payload) VALUES(1, ?, ?)
                ON CONFLICT(id) DO UPDATE
                SET day=excluded.day, payload=excluded.payload
                """,
                (day.isoformat(), json.dumps(snapshot.as_dict())),
            )
            conn.commit()

    def load_snapshot(self) -> tuple[date, HealthSnapshot] | None:
        """Carga el snapshot guardado, o None si no hay."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT day, payload FROM daily_snapshot WHERE id = 1"
            ).fetchone()
        if row is None:
            return None
        day = _parse_day(row["day"])
        if day is None:
            return None
        return day, HealthSnapshot.from_dict(_parse_json_dict(row["payload"]))

    def save_weekly(self, weekly: dict[str, list[WeeklyEntry]]) -> None:
        """Reemplaza el historial semanal completo."""
        rows = [
            (metric, entry.day.isoformat(), float(entry.value))
            for metric, entries in weekly.items()
            for entry in entries
        ]
        with self._connect() as conn:
            conn.execute("DELETE FROM weekly_history")
            conn.executemany(
                "INSERT INTO weekly_history(metric, day, value) VALUES (?, ?, ?)",
                rows,
            )
            conn.commit()

    def load_weekly(self) -> dict[str, list[WeeklyEntry]]:
        """Carga el historial semanal ordenado por dia."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT metric, day, value FROM weekly_history ORDER BY metric, day"
            ).fetchall()
        out: dict[str, list[WeeklyEntry]] = {key: [] for key in METRIC_FIELDS.values()}
        for row in rows:
            day = _parse_day(row["day"])
            if day is None or row["metric"] not in out:
                continue
            out[row["metric"]].append(WeeklyEntry(day=day, value=float(row["value"])))
        return out


class SQLiteSettingsStore(SettingsStore):
    """SettingsStore over the app_config table; blocking I/O runs in a thread."""

    def __init__(self, store: SQLiteStore) -> None:
        self._store = store

    async def get(self, key: str) -> str | None:
        return await asyncio.to_thread(self._store.get_value, key)

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._store.set_value, key, value)

    async def remove(self, key: str) -> None:
        await asyncio.to_thread(self._store.remove_value, key)


def _parse_day(raw: object) -> date | None:
    try:
        return date.fromisoformat(str(raw))
    except ValueError:
        return None


def _parse_json_dict(raw: str) -> dict[str, Any]:
    try:
        parsed: Any = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    if not isinstance(parsed, dict):
        return {}
    return parsed

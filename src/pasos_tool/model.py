"""Modelos tipados para lecturas de pasos, snapshot diario y perfil."""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass, fields
from datetime import date, datetime
from enum import Enum

# Persisted/wire names for each snapshot field.
METRIC_FIELDS: dict[str, str] = {
    "steps": "steps",
    "active_energy": "activeEnergy",
    "distance": "distance",
    "speed": "speed",
    "active_time": "activeTime",
}


class UnitSystem(str, Enum):
    """Unit system used for distance and speed."""

    METRIC = "metric"
    IMPERIAL = "imperial"

    @classmethod
    def parse(cls, raw: object) -> UnitSystem | None:
        """Parse 'Metric'/'Imperial' (any case); None when unrecognised."""
        if isinstance(raw, UnitSystem):
            return raw
        if not isinstance(raw, str):
            return None
        try:
            return cls(raw.strip().lower())
        except ValueError:
            return None


class SpeedUnit(str, Enum):
    """Display unit for speed."""

    KMH = "km/h"
    MS = "m/s"
    MPH = "mph"

    @classmethod
    def parse(cls, raw: object) -> SpeedUnit | None:
        if isinstance(raw, SpeedUnit):
            return raw
        if not isinstance(raw, str):
            return None
        try:
            return cls(raw.strip().lower())
        except ValueError:
            return None


@dataclass(frozen=True)
class HealthSnapshot:
    """Daily activity metrics; active_time is expressed in hours."""

    steps: int = 0
    active_energy: float = 0.0
    distance: float = 0.0
    speed: float = 0.0
    active_time: float = 0.0

    @classmethod
    def zero(cls) -> HealthSnapshot:
        return cls()

    def replace(self, **changes: object) -> HealthSnapshot:
        return dataclasses.replace(self, **changes)  # type: ignore[arg-type]

    def as_dict(self) -> dict[str, float]:
        """Return metric values keyed by their persisted names."""
        return {
            METRIC_FIELDS[f.name]: getattr(self, f.name) for f in fields(self)
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, object]) -> HealthSnapshot:
        """Build a snapshot from persisted (camelCase) or attribute names.

        Unknown keys are ignored and unparseable values fall back to zero.
        """
        values: dict[str, object] = {}
        for attr, key in METRIC_FIELDS.items():
            value = raw.get(key, raw.get(attr))
            values[attr] = _coerce_metric(attr, value)
        return cls(**values)  # type: ignore[arg-type]


def normalize_fields(raw: Mapping[str, object]) -> dict[str, object]:
    """Map camelCase metric keys to snapshot attribute names.

    Raises:
        KeyError: If a key is not a snapshot metric.
    """
    by_key = {key: attr for attr, key in METRIC_FIELDS.items()}
    out: dict[str, object] = {}
    for key, value in raw.items():
        if key in METRIC_FIELDS:
            attr = key
        elif key in by_key:
            attr = by_key[key]
        else:
            raise KeyError(f"Unknown metric field: {key}")
        out[attr] = _coerce_metric(attr, value)
    return out


def _coerce_metric(attr: str, value: object) -> int | float:
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0 if attr == "steps" else 0.0
    if number != number or number < 0:
        number = 0.0
    if attr == "steps":
        return int(number)
    return number


@dataclass(frozen=True)
class WeeklyEntry:
    """One day of a metric's weekly series."""

    day: date
    value: float


@dataclass(frozen=True)
class StepEvent:
    """One raw cumulative reading delivered by the sensor."""

    steps: int
    timestamp: datetime | None = None


@dataclass(frozen=True)
class StepCount:
    """Result of a day-scoped sensor query."""

    steps: int


@dataclass(frozen=True)
class UserProfile:
    """User settings consumed by the metrics calculator."""

    weight_kg: float | None = None
    unit_system: UnitSystem = UnitSystem.METRIC
    speed_unit: SpeedUnit | None = None

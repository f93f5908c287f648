"""Cálculo de métricas derivadas a partir de pasos (energía, distancia, velocidad)."""

from __future__ import annotations

import math

from pasos_tool.model import SpeedUnit, UnitSystem

STRIDE_LENGTH_M = 0.762
KCAL_PER_STEP_PER_KG = 0.04
KM_TO_MILES = 0.621371
KMH_PER_MS = 3.6


def parse_weight(raw: object) -> float | None:
    """Parse a body weight in kg.

    Args:
        raw: Number or string-encoded number (as stored in settings).

    Returns:
        Weight as float, or None if missing, non-numeric, NaN or negative.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, str):
        raw = raw.strip().replace(",", ".")
        if not raw:
            return None
    try:
        weight = float(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    if not math.isfinite(weight) or weight < 0:
        return None
    return weight


def active_energy(steps: int, weight_kg: object) -> float:
    """Active energy in kcal: steps * 0.04 * weight / 1000, 2 decimals.

    Unknown or unparseable weight yields 0.
    """
    weight = parse_weight(weight_kg)
    if weight is None or steps <= 0:
        return 0.0
    return round(steps * KCAL_PER_STEP_PER_KG * weight / 1000, 2)


def distance_km(steps: int) -> float:
    """Unrounded distance in kilometres for a step count."""
    return max(steps, 0) * STRIDE_LENGTH_M / 1000


def distance(steps: int, unit_system: UnitSystem) -> float:
    """Distance in km (metric) or miles (imperial), 2 decimals."""
    km = distance_km(steps)
    if unit_system is UnitSystem.IMPERIAL:
        return round(km * KM_TO_MILES, 2)
    return round(km, 2)


def format_distance(steps: int, unit_system: UnitSystem) -> str:
    unit = "mi" if unit_system is UnitSystem.IMPERIAL else "km"
    return f"{distance(steps, unit_system):.2f} {unit}"


def resolve_speed_unit(
    unit_system: UnitSystem, speed_unit: SpeedUnit | None = None
) -> SpeedUnit:
    """Pick the display unit: imperial is always mph, metric honours m/s."""
    if unit_system is UnitSystem.IMPERIAL or speed_unit is SpeedUnit.MPH:
        return SpeedUnit.MPH
    if speed_unit is SpeedUnit.MS:
        return SpeedUnit.MS
    return SpeedUnit.KMH


def speed(
    distance_traveled_km: float,
    active_time_hours: float,
    unit_system: UnitSystem,
    speed_unit: SpeedUnit | None = None,
) -> float:
    """Average speed over the active time.

    Args:
        distance_traveled_km: Distance in kilometres.
        active_time_hours: Active time in hours; zero or less yields 0.
        unit_system: Metric or imperial.
        speed_unit: Optional display unit selected by the user.

    Returns:
        Speed rounded to 2 decimals in the resolved unit.
    """
    if active_time_hours <= 0 or distance_traveled_km <= 0:
        return 0.0
    kmh = distance_traveled_km / active_time_hours
    unit = resolve_speed_unit(unit_system, speed_unit)
    if unit is SpeedUnit.MPH:
        return round(kmh * KM_TO_MILES, 2)
    if unit is SpeedUnit.MS:
        return round(kmh / KMH_PER_MS, 2)
    return round(kmh, 2)


def format_speed(
    distance_traveled_km: float,
    active_time_hours: float,
    unit_system: UnitSystem,
    speed_unit: SpeedUnit | None = None,
) -> str:
    value = speed(distance_traveled_km, active_time_hours, unit_system, speed_unit)
    unit = resolve_speed_unit(unit_system, speed_unit)
    return f"{value:.2f} {unit.value}"

"""CLI para reproducir lecturas de pasos y generar el resumen diario y semanal."""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import datetime, tzinfo
from pathlib import Path

from dateutil import tz

from pasos_tool.aggregator import MAX_STEP_DELTA, StepAggregator
from pasos_tool.calculations import distance_km, format_distance, format_speed
from pasos_tool.errors import PasosToolError
from pasos_tool.excel_writer import ExcelLayout, write_weekly_xlsx
from pasos_tool.logging_config import configure_logging
from pasos_tool.model import SpeedUnit, UnitSystem
from pasos_tool.sensors.replay import ReplaySensor
from pasos_tool.settings import format_units, load_profile
from pasos_tool.storage import AppConfig, SQLiteSettingsStore, SQLiteStore
from pasos_tool.store import DailyAggregateStore


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed argparse namespace.
    """
    parser = argparse.ArgumentParser(
        description="Agregación de pasos: snapshot diario + historial semanal."
    )
    parser.add_argument(
        "--readings",
        required=True,
        help="CSV con lecturas acumuladas (timestamp, steps).",
    )
    parser.add_argument(
        "--db",
        default=str(Path.home() / ".pasos_tool" / "pasos.sqlite3"),
        help="Base SQLite (default: ~/.pasos_tool/pasos.sqlite3).",
    )
    parser.add_argument("--weight", help="Peso corporal en kg (se guarda).")
    parser.add_argument(
        "--units",
        choices=[u.value for u in UnitSystem],
        help="Sistema de unidades (se guarda).",
    )
    parser.add_argument(
        "--speed-unit",
        choices=[u.value for u in SpeedUnit],
        help="Unidad de velocidad (se guarda).",
    )
    parser.add_argument("--timezone", help="Zona horaria, p.ej. Europe/Madrid.")
    parser.add_argument(
        "--max-step-delta",
        type=int,
        default=MAX_STEP_DELTA,
        help=f"Máximo de pasos por lectura (default: {MAX_STEP_DELTA}).",
    )
    parser.add_argument("--export-dir", help="Directorio para el Excel semanal.")
    parser.add_argument("--log-level", default="WARNING")
    parser.add_argument("--log-format", choices=["console", "json"], default="console")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Run the replay CLI.

    Returns:
        Exit code (0 on success, 1 on error).
    """
    ns = parse_args(argv)
    configure_logging(ns.log_level, ns.log_format)
    try:
        return asyncio.run(run(ns))
    except (PasosToolError, FileNotFoundError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


async def run(ns: argparse.Namespace) -> int:
    """Replay the readings file through the aggregation pipeline."""
    repo = SQLiteStore(Path(ns.db).expanduser())
    config = _apply_overrides(repo.load_config(), ns)
    repo.save_config(config)
    zone = resolve_zone(config.timezone)

    sensor = ReplaySensor.from_csv(Path(ns.readings).expanduser(), zone)
    store = DailyAggregateStore(repo, unit_system=config.unit_system)
    store.hydrate(sensor.clock().astimezone(zone).date())
    settings = SQLiteSettingsStore(repo)

    aggregator = StepAggregator(
        sensor,
        store,
        settings,
        max_step_delta=ns.max_step_delta,
        zone=zone,
        clock=sensor.clock,
    )
    async with aggregator:
        emitted = sensor.replay()
        await aggregator.drain()

    store.add_weekly_data(store.day, store.snapshot)
    store.flush()

    profile = await load_profile(settings, store.unit_system)
    snapshot = store.snapshot
    print(f"OK: Readings replayed: {emitted}")
    print(f"OK: Day: {store.day.isoformat()}")
    print(f"OK: Steps: {snapshot.steps}")
    print(f"OK: Distance: {format_distance(snapshot.steps, profile.unit_system)}")
    speed_text = format_speed(
        distance_km(snapshot.steps),
        snapshot.active_time,
        profile.unit_system,
        profile.speed_unit,
    )
    print(f"OK: Speed: {speed_text}")
    print(f"OK: Active energy: {snapshot.active_energy:.2f} kcal")
    print(f"OK: Active time: {snapshot.active_time:.2f} h")

    weekly = store.weekly_frame()
    if not weekly.empty:
        print(weekly.to_string(index=False))

    if ns.export_dir:
        ts = datetime.now(tz=zone).strftime("%Y-%m-%d_%H-%M-%S")
        out_path = Path(ns.export_dir).expanduser() / f"pasos_semanal_{ts}.xlsx"
        layout = ExcelLayout(unit_system=profile.unit_system)
        write_weekly_xlsx(weekly, out_path, layout)
        print(f"OK: Output: {out_path}")
    return 0


def resolve_zone(name: str) -> tzinfo:
    """Resolve a zone name with dateutil; empty means the system zone.

    Raises:
        ValueError: If the name is unknown.
    """
    if not name:
        return tz.tzlocal()
    zone = tz.gettz(name)
    if zone is None:
        raise ValueError(f"Unknown time zone: {name}")
    return zone


def _apply_overrides(config: AppConfig, ns: argparse.Namespace) -> AppConfig:
    return AppConfig(
        weight=ns.weight if ns.weight is not None else config.weight,
        units=format_units(UnitSystem(ns.units)) if ns.units else config.units,
        speed_unit=ns.speed_unit or config.speed_unit,
        timezone=ns.timezone if ns.timezone is not None else config.timezone,
    )
